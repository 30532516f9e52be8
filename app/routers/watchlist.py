"""Watchlist API and TMDB episode lookup."""
from fastapi import APIRouter, Depends, Path

from app.dependencies import get_metadata_provider, get_request_context, get_watchlist_service
from app.schemas.watchlist import (
    EpisodesResponse,
    WatchlistAddRequest,
    WatchlistCheckResponse,
    WatchlistMutationResponse,
    WatchlistRemoveRequest,
    WatchlistResponse,
)
from app.services.sessions import RequestContext
from app.services.watchlist import WatchlistService, serialize_movie

router = APIRouter(prefix="/api", tags=["watchlist"])


@router.get("/watchlist", response_model=WatchlistResponse)
def list_watchlist(
    ctx: RequestContext = Depends(get_request_context),
    service: WatchlistService = Depends(get_watchlist_service),
):
    return {"items": [serialize_movie(m) for m in service.list_movies(ctx)]}


@router.get("/watchlist/check/{external_id}", response_model=WatchlistCheckResponse)
def check_watchlist(
    external_id: str,
    ctx: RequestContext = Depends(get_request_context),
    service: WatchlistService = Depends(get_watchlist_service),
):
    return WatchlistCheckResponse(inWatchlist=service.check(ctx, external_id))


@router.post("/watchlist/add", response_model=WatchlistMutationResponse)
def add_to_watchlist(
    data: WatchlistAddRequest,
    ctx: RequestContext = Depends(get_request_context),
    service: WatchlistService = Depends(get_watchlist_service),
):
    service.add(ctx, data.external_id, data.media_type)
    return WatchlistMutationResponse(message="Added to watchlist.")


@router.post("/watchlist/remove", response_model=WatchlistMutationResponse)
def remove_from_watchlist(
    data: WatchlistRemoveRequest,
    ctx: RequestContext = Depends(get_request_context),
    service: WatchlistService = Depends(get_watchlist_service),
):
    service.remove(ctx, data.external_id)
    return WatchlistMutationResponse(message="Removed from watchlist.")


@router.get("/episodes/{external_id}/{season}", response_model=EpisodesResponse)
def season_episodes(
    external_id: str,
    season: int = Path(ge=0),
    provider=Depends(get_metadata_provider),
):
    data = provider.fetch_season(external_id, season)
    return {
        "episodes": [
            {
                "episode_number": ep.get("episode_number"),
                "name": ep.get("name"),
                "overview": ep.get("overview"),
            }
            for ep in data.get("episodes") or []
        ]
    }
