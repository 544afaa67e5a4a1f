from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException, Request
from dotenv import load_dotenv

from reqlog.config import settings
from reqlog.obs.context import get_request_id
from reqlog.obs.logger import init_logger
from reqlog.obs.middleware import RequestLoggingMiddleware

load_dotenv()

logger = init_logger(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"App listening on port {settings.PORT}!", env=settings.APP_ENV)

    yield

    # Shutdown
    logger.info("Shutting down")
    logger.close()


app = FastAPI(
    title="Request logging demo",
    version="1.0.0",
    lifespan=lifespan
)


@app.get("/")
async def root():
    return {
        "service": "reqlog demo",
        "version": "1.0.0",
        "status": "running",
        "env": settings.APP_ENV,
    }


@app.get("/health")
async def health():
    return {"status": "healthy", "service": "reqlog-demo"}


@app.get("/api/orders/{order_id}")
async def get_order(request: Request, order_id: int):
    if order_id <= 0:
        raise HTTPException(status_code=404, detail="Order not found")
    logger.debug("Order lookup", orderId=order_id, requestId=get_request_id())
    return {"id": order_id, "requestId": request.state.request_id}


# Apply middleware
app = RequestLoggingMiddleware(app, logger=logger, settings=settings)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.PORT,
        log_level="info"
    )
