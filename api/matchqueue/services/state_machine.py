from datetime import datetime

from ..domain import QueueStatus


def transition_queue_status(current: QueueStatus, action: str, now: datetime, expires_at: datetime | None) -> QueueStatus:
    if current in {QueueStatus.MATCHED, QueueStatus.LEFT}:
        return current

    if expires_at is not None and now >= expires_at:
        return QueueStatus.LEFT

    if action == "leave":
        return QueueStatus.LEFT

    if action == "match":
        return QueueStatus.MATCHED

    if action == "expire":
        return current

    return current
