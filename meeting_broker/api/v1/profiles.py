"""Profile and session log API routes."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends

from meeting_broker.core.dependencies import get_profile_repository, get_user_id
from meeting_broker.domains.profiles.repository import ProfileRepository
from meeting_broker.domains.profiles.schemas import (
    ActivitySummary,
    ProfileUpsert,
    SessionLogCreate,
    SessionLogList,
    StoreAck,
)
from meeting_broker.utils.errors import BrokerError, to_http_exception

router = APIRouter(tags=["profiles"])
logger = logging.getLogger(__name__)


@router.post("/profile", response_model=StoreAck, response_model_exclude_none=True)
def upsert_profile(
    payload: ProfileUpsert,
    repository: ProfileRepository = Depends(get_profile_repository),
) -> StoreAck:
    """Create or update the caller's profile."""
    try:
        repository.upsert_profile(payload)
    except BrokerError as exc:
        raise to_http_exception(exc) from exc
    return StoreAck()


@router.post("/logs", response_model=StoreAck)
def create_log(
    payload: SessionLogCreate,
    repository: ProfileRepository = Depends(get_profile_repository),
) -> StoreAck:
    """Record a completed session."""
    try:
        log_id = repository.insert_log(payload)
    except BrokerError as exc:
        raise to_http_exception(exc) from exc
    return StoreAck(id=log_id)


@router.get("/me/logs", response_model=SessionLogList)
def list_my_logs(
    since: Optional[datetime] = None,
    user_id: str = Depends(get_user_id),
    repository: ProfileRepository = Depends(get_profile_repository),
) -> SessionLogList:
    """The caller's sessions since ``since`` (default: last 30 days)."""
    try:
        logs = repository.list_logs(user_id, since)
    except BrokerError as exc:
        raise to_http_exception(exc) from exc
    return SessionLogList(logs=logs)


@router.get("/me/summary", response_model=ActivitySummary)
def my_summary(
    user_id: str = Depends(get_user_id),
    repository: ProfileRepository = Depends(get_profile_repository),
) -> ActivitySummary:
    try:
        return repository.summarize(user_id)
    except BrokerError as exc:
        raise to_http_exception(exc) from exc
