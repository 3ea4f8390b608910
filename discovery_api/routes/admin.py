"""Cache invalidation, rule management and monitoring endpoints."""

from typing import List

from fastapi import APIRouter, HTTPException

from discovery.models import InvalidationEvent, InvalidationRule
from discovery.monitoring import DiscoverySession, PerformanceSummary

from ..models import (
    InvalidateEventResponse,
    InvalidatePatternRequest,
    InvalidatePatternResponse,
    RulesResponse,
)
from ..state import get_state

router = APIRouter()


@router.post("/invalidate/pattern", response_model=InvalidatePatternResponse)
async def invalidate_pattern(request: InvalidatePatternRequest):
    deleted = await get_state().engine.invalidate_by_pattern(request.pattern)
    return InvalidatePatternResponse(pattern=request.pattern, deleted=deleted)


@router.post("/invalidate/event", response_model=InvalidateEventResponse)
async def invalidate_event(event: InvalidationEvent):
    results = await get_state().engine.invalidate_by_event(event)
    return InvalidateEventResponse(
        results=[InvalidatePatternResponse(pattern=p, deleted=n) for p, n in results]
    )


@router.get("/rules", response_model=RulesResponse)
async def list_rules():
    return RulesResponse(rules=await get_state().engine.get_active_rules())


@router.post("/rules", response_model=RulesResponse)
async def add_rule(rule: InvalidationRule):
    return RulesResponse(rules=await get_state().engine.add_invalidation_rule(rule))


@router.delete("/rules", response_model=RulesResponse)
async def remove_rule(pattern: str):
    engine = get_state().engine
    if not engine.validate_pattern(pattern):
        raise HTTPException(status_code=400, detail=f"Invalid pattern: {pattern}")
    return RulesResponse(rules=await engine.remove_invalidation_rule(pattern))


@router.get("/performance", response_model=PerformanceSummary)
def performance_summary():
    return get_state().engine.get_performance_summary()


@router.get("/sessions/{user_id}", response_model=List[DiscoverySession])
def session_analytics(user_id: str, limit: int = 10):
    return get_state().engine.get_session_analytics(user_id, limit)
