from typing import Any

from fastapi import APIRouter, Depends, Query

from ..config import HISTORY_DEFAULT_LIMIT, RL_FIND_MATCHES_LIMIT, RL_WINDOW_SECONDS
from ..deps import get_matching_service, success
from ..schemas import FindMatchesRequest, UpdateDatingPreferencesRequest, UpdatePreferencesRequest
from ..services.matching_service import MatchingService
from ..services.rate_limit import rate_limit_dependency

router = APIRouter()

RL_FIND_MATCHES = rate_limit_dependency("find_matches", RL_FIND_MATCHES_LIMIT, RL_WINDOW_SECONDS)


@router.get("/preferences/{user_id}")
def get_preferences(user_id: str, service: MatchingService = Depends(get_matching_service)) -> dict[str, Any]:
    return success(service.get_preferences(user_id).to_dict())


@router.put("/preferences/{user_id}")
def update_preferences(
    user_id: str,
    payload: UpdatePreferencesRequest,
    service: MatchingService = Depends(get_matching_service),
) -> dict[str, Any]:
    return success(service.update_preferences(user_id, payload.changes()).to_dict())


@router.put("/dating-preferences/{user_id}")
def update_dating_preferences(
    user_id: str,
    payload: UpdateDatingPreferencesRequest,
    service: MatchingService = Depends(get_matching_service),
) -> dict[str, Any]:
    return success(service.update_dating_preferences(user_id, payload.changes()).to_dict())


@router.post("/find-dating-matches", dependencies=[RL_FIND_MATCHES])
def find_dating_matches(
    payload: FindMatchesRequest,
    service: MatchingService = Depends(get_matching_service),
) -> dict[str, Any]:
    result = service.find_matches(payload.user_id, payload.intent, payload.max_matches)
    return success(result.to_response())


@router.get("/history/{user_id}")
def match_history(
    user_id: str,
    limit: int = Query(default=HISTORY_DEFAULT_LIMIT),
    offset: int = Query(default=0),
    service: MatchingService = Depends(get_matching_service),
) -> dict[str, Any]:
    return success(service.get_match_history(user_id, limit=limit, offset=offset))


@router.get("/stats")
def matching_stats(service: MatchingService = Depends(get_matching_service)) -> dict[str, Any]:
    return success(service.get_matching_stats())
