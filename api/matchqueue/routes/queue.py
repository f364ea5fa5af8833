from typing import Any

from fastapi import APIRouter, Depends

from ..config import RL_QUEUE_JOIN_LIMIT, RL_WINDOW_SECONDS
from ..deps import get_matching_service, snake_keys, success
from ..schemas import JoinQueueRequest, LeaveQueueRequest
from ..services.matching_service import MatchingService
from ..services.rate_limit import rate_limit_dependency

router = APIRouter()

RL_QUEUE_JOIN = rate_limit_dependency("queue_join", RL_QUEUE_JOIN_LIMIT, RL_WINDOW_SECONDS)


@router.post("/join", dependencies=[RL_QUEUE_JOIN])
def join_queue(payload: JoinQueueRequest, service: MatchingService = Depends(get_matching_service)) -> dict[str, Any]:
    entry = service.join_queue(payload.user_id, payload.intent, snake_keys(payload.profile))
    return success(
        {
            "queueEntryId": entry.id,
            "userId": entry.user_id,
            "intent": entry.intent.value,
            "joinedAt": entry.joined_at.isoformat(),
            "expiresAt": entry.expires_at.isoformat() if entry.expires_at else None,
        }
    )


@router.post("/leave")
def leave_queue(payload: LeaveQueueRequest, service: MatchingService = Depends(get_matching_service)) -> dict[str, Any]:
    return success(service.leave_queue(payload.user_id))


@router.get("/status/{user_id}")
def queue_status(user_id: str, service: MatchingService = Depends(get_matching_service)) -> dict[str, Any]:
    return success(service.get_queue_status(user_id))


@router.get("/stats")
def queue_stats(service: MatchingService = Depends(get_matching_service)) -> dict[str, Any]:
    return success(service.get_queue_stats())
