import re
import threading
from typing import Any, Mapping

from .repo import SqlMatchAttemptStore, SqlPreferenceStore, SqlQueueStore
from .services.matching_service import MatchingService

_service: MatchingService | None = None
_service_lock = threading.Lock()

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def get_matching_service() -> MatchingService:
    global _service
    with _service_lock:
        if _service is None:
            _service = MatchingService(SqlPreferenceStore(), SqlQueueStore(), SqlMatchAttemptStore())
        return _service


def close_matching_service() -> None:
    global _service
    with _service_lock:
        if _service is not None:
            _service.close()
            _service = None


def snake_keys(payload: Mapping[str, Any]) -> dict[str, Any]:
    """camelCase request keys -> the snake_case names used by the service."""
    return {_CAMEL_BOUNDARY.sub("_", str(k)).lower(): v for k, v in payload.items()}


def success(data: Any) -> dict[str, Any]:
    return {"status": "success", "data": data}
