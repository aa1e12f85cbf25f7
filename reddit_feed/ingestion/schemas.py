"""
Feed-facing schemas produced by the ingestion layer.

ResolvedPost is the display-ready form of one upstream post. Anything
that reaches the feed assembler is guaranteed displayable: the model
refuses to exist without a media kind and a display URL.
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class MediaKind(str, Enum):
    """Kind of media a post resolves to."""

    IMAGE = "image"
    VIDEO = "video"


class ResolvedPost(BaseModel):
    """
    Normalized, display-ready representation of one upstream post.

    Immutable once created. Produced only by the media resolver.
    """

    model_config = ConfigDict(frozen=True)

    # Identity
    id: str = Field(..., min_length=1, description="Upstream post id (e.g. 'abc123')")
    title: str = Field(default="")
    author: str = Field(default="[deleted]")
    source_name: str = Field(..., description="Source the post was fetched from")
    created_at: datetime | None = Field(
        default=None,
        description="UTC creation time on the platform",
    )
    permalink: str = Field(..., description="Absolute link to the post discussion")

    # Media
    is_image: bool = False
    is_video: bool = False
    display_url: str = Field(..., min_length=1, description="Primary URL to display")
    video_url: str | None = Field(default=None, description="Playable URL for videos")
    thumbnail_url: str = Field(..., min_length=1, description="Static fallback image")
    media_rule: str | None = Field(
        default=None,
        description="Name of the resolver rule that matched",
    )

    # Policy
    priority_flag: bool = Field(
        default=False,
        description="Marker consumed by priority-class predicates",
    )

    @model_validator(mode="after")
    def check_displayable(self) -> "ResolvedPost":
        if not (self.is_image or self.is_video):
            raise ValueError("ResolvedPost must be an image or a video")
        if self.is_video and not self.video_url:
            raise ValueError("Video posts require video_url")
        return self

    @property
    def media_kind(self) -> MediaKind:
        return MediaKind.VIDEO if self.is_video else MediaKind.IMAGE

    @classmethod
    def timestamp_from_epoch(cls, value: float | int | None) -> datetime | None:
        """Convert a created_utc epoch value into an aware datetime."""
        if value is None:
            return None
        try:
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError):
            return None


class SourceResult(BaseModel):
    """
    Outcome of fetching one source.

    A source may carry both posts and an error when only some sort
    variants succeeded.
    """

    source_name: str
    posts: list[ResolvedPost] = Field(default_factory=list)
    error: str | None = None
    error_category: str | None = None

    @property
    def failed(self) -> bool:
        """Errored and empty; the only state that counts toward overall failure."""
        return self.error is not None and not self.posts


class FeedResult(BaseModel):
    """Results for every requested source plus an optional overall error."""

    results: list[SourceResult] = Field(default_factory=list)
    overall_error: str | None = None

    @property
    def posts(self) -> list[ResolvedPost]:
        """All posts, in source order."""
        return [post for result in self.results for post in result.posts]
