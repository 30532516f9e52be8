from app.schemas.auth import RegisterRequest, VerifyRequest, ResendVerificationRequest, LoginRequest, SessionResponse
from app.schemas.watchlist import (
    WatchlistAddRequest,
    WatchlistRemoveRequest,
    WatchlistCheckResponse,
    WatchlistMutationResponse,
    WatchlistResponse,
    EpisodesResponse,
)
