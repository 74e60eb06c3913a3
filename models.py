# models.py
from datetime import date, datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, model_validator


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class SelectorSpec(BaseModel):
    selector: str = Field(..., description="CSS selector evaluated relative to the current element")
    attrs: List[str] = Field(default_factory=list, description="Attributes read in order when text is empty")
    text: bool = Field(True, description="Read the element's text content before any attribute")

    class Config:
        frozen = True


class CatalogSelectors(BaseModel):
    items: List[str] = Field(..., description="Selectors locating one catalog card each, first match wins")
    title: List[SelectorSpec] = Field(default_factory=list, description="Title candidates")
    link: List[SelectorSpec] = Field(default_factory=list, description="Link candidates")
    thumbnail: List[SelectorSpec] = Field(default_factory=list, description="Thumbnail candidates")
    episodes: List[SelectorSpec] = Field(default_factory=list, description="Episode-count candidates")
    genres: List[SelectorSpec] = Field(default_factory=list, description="Genre tag candidates")

    class Config:
        frozen = True


class EpisodeSelectors(BaseModel):
    items: List[str] = Field(..., description="Selectors locating one episode entry each, first match wins")
    title: List[SelectorSpec] = Field(default_factory=list, description="Episode title candidates")
    link: List[SelectorSpec] = Field(default_factory=list, description="Episode link candidates")
    number: List[SelectorSpec] = Field(default_factory=list, description="Explicit episode-number candidates")
    thumbnail: List[SelectorSpec] = Field(default_factory=list, description="Episode thumbnail candidates")

    class Config:
        frozen = True


class SiteDescriptor(BaseModel):
    id: str = Field(..., description="Site identifier used in record ids and routes")
    name: str = Field(..., description="Human-readable site name")
    base_url: str = Field(..., description="Landing page used when no query is given")
    search_url: str = Field(..., description="Search endpoint")
    search_param: str = Field("q", description="Query-string key carrying the search text")
    catalog: CatalogSelectors = Field(..., description="Selector groups for catalog pages")
    episodes: EpisodeSelectors = Field(..., description="Selector groups for episode-list pages")

    class Config:
        frozen = True


class CatalogEntry(BaseModel):
    id: str = Field(..., description="Site-scoped id: {siteId}-{ordinal}")
    site_id: str = Field(..., alias="siteId", description="Source site id")
    title: str = Field(..., min_length=2, description="Anime title")
    url: str = Field(..., min_length=1, description="Absolute anime page URL")
    thumbnail: str = Field("", description="Absolute poster URL or empty")
    total_episodes: Optional[int] = Field(None, alias="totalEpisodes", ge=0, description="Episode count when shown on the card")
    genres: List[str] = Field(default_factory=list, max_length=5, description="Up to 5 genre tags")
    status: str = Field("available", description="Availability status")
    year: int = Field(default_factory=lambda: datetime.now().year, description="Release year, current year when unknown")

    class Config:
        populate_by_name = True
        from_attributes = True


class EpisodeEntry(BaseModel):
    id: str = Field(..., description="Episode id: {siteId}-{animeId}-ep-{number}")
    anime_id: str = Field(..., alias="animeId", description="Owning anime id")
    site_id: str = Field(..., alias="siteId", description="Source site id")
    number: int = Field(..., ge=1, description="Episode number")
    title: str = Field(..., description="Episode title")
    url: str = Field(..., min_length=1, description="Absolute watch page URL")
    thumbnail: str = Field("", description="Episode thumbnail URL")
    duration: str = Field("24 min", description="Episode duration")
    release_date: str = Field(default_factory=lambda: date.today().isoformat(), alias="releaseDate", description="Release date")

    class Config:
        populate_by_name = True
        from_attributes = True


class StreamingData(BaseModel):
    streaming_url: str = Field("", alias="streamingUrl", description="Playable, embeddable or external URL")
    referer: str = Field("", description="Page the stream was found on")
    headers: Dict[str, str] = Field(default_factory=dict, description="Replay headers (Referer, User-Agent)")
    external: bool = Field(False, description="True when the caller must open the source page itself")
    error: Optional[str] = Field(None, description="Short diagnostic when resolution failed")

    class Config:
        populate_by_name = True

    @model_validator(mode="after")
    def _external_needs_url(self):
        if self.external and not self.streaming_url:
            raise ValueError("external streaming data must carry the source page URL")
        return self


class StreamSource(BaseModel):
    url: str = Field(..., description="Media URL")
    quality: str = Field("default", description="Quality label such as 720p")
    is_m3u8: bool = Field(False, alias="isM3U8", description="HLS playlist flag")

    class Config:
        populate_by_name = True


class CacheEntry(BaseModel):
    value: str = Field(..., description="Resolved (or placeholder) media URL")
    fetched_at: float = Field(..., description="Epoch seconds of the resolution")


class CatalogResponse(BaseModel):
    success: bool = True
    data: List[CatalogEntry] = Field(default_factory=list)
    count: int = 0
    query: Optional[str] = None
    timestamp: str = Field(default_factory=_utc_timestamp)

    class Config:
        populate_by_name = True


class EpisodesResponse(BaseModel):
    success: bool = True
    data: List[EpisodeEntry] = Field(default_factory=list)
    count: int = 0
    anime_id: str = Field(..., alias="animeId")
    site_id: str = Field(..., alias="siteId")
    timestamp: str = Field(default_factory=_utc_timestamp)

    class Config:
        populate_by_name = True


class StreamResponse(BaseModel):
    success: bool = True
    data: StreamingData
    episode_id: str = Field(..., alias="episodeId")
    site_id: str = Field(..., alias="siteId")
    timestamp: str = Field(default_factory=_utc_timestamp)

    class Config:
        populate_by_name = True


class ErrorResponse(BaseModel):
    success: bool = Field(False, description="Always false")
    error: str = Field(..., description="Error category")
    message: str = Field(..., description="Error message")
