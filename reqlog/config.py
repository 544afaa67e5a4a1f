# reqlog/config.py
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict

from reqlog.obs.transports import RotationPolicy, parse_size


class Settings(BaseSettings):
    # App
    APP_ENV: str = "development"  # development | production | test | anything else
    PORT: int = 6000

    # Log files
    LOG_DIR: str = "logs"
    LOG_MAX_SIZE: str = "20m"
    LOG_RETENTION_DAYS: int = 14
    LOG_COMPRESS: bool = True
    LOG_DATE_PATTERN: str = "%Y-%m-%d"
    LOG_DISABLE_FILES: bool = False

    # Request logging
    LOG_SKIP_ROUTES: List[str] = ["/health", "/api/health", "/favicon.ico"]
    REQUEST_ID_HEADER: str = "x-request-id"

    # read .env and ignore any extra keys so this doesn't break again
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def is_development(self) -> bool:
        return self.APP_ENV == "development"

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def is_test(self) -> bool:
        return self.APP_ENV == "test"

    @property
    def file_sinks_enabled(self) -> bool:
        return not (self.is_test or self.LOG_DISABLE_FILES)

    @property
    def rotation_policy(self) -> RotationPolicy:
        return RotationPolicy(
            max_size_bytes=parse_size(self.LOG_MAX_SIZE),
            max_age_days=self.LOG_RETENTION_DAYS,
            compress_on_rotate=self.LOG_COMPRESS,
            date_pattern=self.LOG_DATE_PATTERN,
        )

settings = Settings()
