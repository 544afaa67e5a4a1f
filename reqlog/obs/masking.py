"""Recursive redaction of sensitive fields in structured log data."""

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple, Union

MASK = "***MASKED***"
SENSITIVE_FIELDS: Tuple[str, ...] = ("password", "token", "secret", "authorization", "apiKey")

# Null | Bool | Number | String | Sequence[Value] | Mapping[str, Value]
Value = Union[None, bool, int, float, str, List[Any], Tuple[Any, ...], Mapping[str, Any]]


class MaskingError(ValueError):
    """Raised for cyclic or unreasonably deep input."""


@dataclass(frozen=True)
class MaskingPolicy:
    fields: Tuple[str, ...] = SENSITIVE_FIELDS
    marker: str = MASK
    max_depth: int = 64

    def __post_init__(self):
        object.__setattr__(self, "_needles", tuple(f.lower() for f in self.fields))

    def is_sensitive(self, key: Any) -> bool:
        name = str(key).lower()
        return any(needle in name for needle in self._needles)


DEFAULT_POLICY = MaskingPolicy()


def mask(value: Value, policy: Optional[MaskingPolicy] = None) -> Value:
    """Return a copy of ``value`` with sensitive mapping keys redacted.

    Keys are matched case-insensitively against the policy substrings at any
    depth; a matching key has its whole value replaced by the marker. Lists
    and tuples keep their order and type. The input is never mutated.
    """
    return _mask(value, policy or DEFAULT_POLICY, 0, set())


def _mask(value: Any, policy: MaskingPolicy, depth: int, path: Set[int]) -> Any:
    if isinstance(value, Mapping):
        container = True
    elif isinstance(value, (list, tuple)):
        container = False
    else:
        return value

    if depth >= policy.max_depth:
        raise MaskingError(f"structure nested deeper than {policy.max_depth} levels")
    marker = id(value)
    if marker in path:
        raise MaskingError("cyclic structure cannot be masked")
    path.add(marker)
    try:
        if container:
            out: Dict[Any, Any] = {}
            for key, item in value.items():
                if policy.is_sensitive(key):
                    out[key] = policy.marker
                else:
                    out[key] = _mask(item, policy, depth + 1, path)
            return out
        items = [_mask(item, policy, depth + 1, path) for item in value]
        if isinstance(value, list):
            return items
        if hasattr(value, "_fields"):  # namedtuple
            return type(value)(*items)
        return tuple(items)
    finally:
        path.discard(marker)
