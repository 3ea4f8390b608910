"""Discovery feed, similar content, preference and batch endpoints."""

from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query

from discovery.models import DiscoveryFeed, FeedStrategy, SimilarItem, UserPreferenceProfile

from ..models import (
    BatchFeedRequest,
    BatchFeedResponse,
    FeedRequest,
    PreferenceResetResponse,
    PreferenceUpdateRequest,
)
from ..state import get_state

router = APIRouter()


def _feed_or_503(feed: DiscoveryFeed) -> DiscoveryFeed:
    if feed.strategy == FeedStrategy.ERROR:
        raise HTTPException(status_code=503, detail=feed.error or "Discovery feed unavailable")
    return feed


@router.post("/feed", response_model=DiscoveryFeed)
async def generate_feed(request: FeedRequest):
    """Generate one page of the discovery feed (custom weights allowed)."""
    engine = get_state().engine
    feed = await engine.generate_discovery_feed(
        request.user_id,
        limit=request.limit,
        cursor=request.cursor,
        weights=request.weights,
        experimental_features=request.experimental_features,
        force_refresh=request.force_refresh,
        diversity_boost=request.diversity_boost,
        include_explanations=request.include_explanations,
    )
    return _feed_or_503(feed)


@router.get("/feed/{user_id}", response_model=DiscoveryFeed)
async def get_feed(
    user_id: str,
    limit: int = 20,
    cursor: Optional[str] = None,
    experimental_features: bool = True,
    force_refresh: bool = False,
    include_explanations: bool = False,
):
    engine = get_state().engine
    feed = await engine.generate_discovery_feed(
        user_id,
        limit=limit,
        cursor=cursor,
        experimental_features=experimental_features,
        force_refresh=force_refresh,
        include_explanations=include_explanations,
    )
    return _feed_or_503(feed)


@router.get("/similar/{item_id}", response_model=List[SimilarItem])
async def similar_content(item_id: str, user_id: str = Query(...), limit: int = 10):
    return await get_state().engine.find_similar_content(item_id, user_id, limit)


@router.get("/preferences/{user_id}", response_model=UserPreferenceProfile)
async def get_preferences(user_id: str):
    profile = await get_state().engine.get_user_preferences(user_id)
    if profile is None:
        raise HTTPException(status_code=404, detail=f"No preference profile for user {user_id}")
    return profile


@router.post("/preferences/{user_id}", response_model=UserPreferenceProfile)
async def update_preferences(user_id: str, request: PreferenceUpdateRequest):
    """Move the user's profile toward the interacted items and purge cached feeds."""
    return await get_state().engine.update_user_preferences(
        user_id,
        request.item_ids,
        request.interaction_types,
        request.weights,
    )


@router.delete("/preferences/{user_id}", response_model=PreferenceResetResponse)
async def reset_preferences(user_id: str):
    await get_state().engine.reset_user_preferences(user_id)
    return PreferenceResetResponse(user_id=user_id)


@router.post("/batch", response_model=BatchFeedResponse)
async def batch_feeds(request: BatchFeedRequest):
    feeds = await get_state().engine.batch_generate_discovery_feeds(request.user_ids, request.options)
    return BatchFeedResponse(feeds=feeds)
