"""Watchlist API schemas. Field names follow the browser client (camelCase)."""
from pydantic import BaseModel, ConfigDict, Field, field_validator


class _ExternalIdBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    external_id: str = Field(alias="externalId")

    @field_validator("external_id", mode="before")
    @classmethod
    def coerce_external_id(cls, v) -> str:
        # TMDB ids arrive as numbers from some clients
        s = str(v if v is not None else "").strip()
        if not s:
            raise ValueError("externalId is required.")
        return s


class WatchlistAddRequest(_ExternalIdBody):
    media_type: str = Field(alias="mediaType")


class WatchlistRemoveRequest(_ExternalIdBody):
    pass


class WatchlistCheckResponse(BaseModel):
    inWatchlist: bool


class WatchlistMutationResponse(BaseModel):
    success: bool = True
    message: str


class MovieSummary(BaseModel):
    externalId: str
    mediaType: str
    title: str
    overview: str = ""
    posterPath: str | None = None
    releaseDate: str | None = None
    voteAverage: float | None = None
    genres: list[dict] = []


class WatchlistResponse(BaseModel):
    items: list[MovieSummary]


class Episode(BaseModel):
    episode_number: int | None = None
    name: str | None = None
    overview: str | None = None


class EpisodesResponse(BaseModel):
    episodes: list[Episode]
