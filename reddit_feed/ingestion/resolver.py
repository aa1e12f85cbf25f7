"""
Media resolver: turns one raw Reddit post into a ResolvedPost.

Resolution is an ordered rule table evaluated first-match-wins. Each
rule is a (predicate, resolver) pair; a rule "matches" when its
predicate holds and its resolver produces a usable URL. Adding a new
upstream media shape means adding a row, not another branch.

    hosted_video → gallery → rich_embed → direct_image → linked_video
        → crosspost (parent only, direct rules) → thumbnail_fallback

Everything here is pure: no I/O, no clock, no randomness.
"""

import html
import logging
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from pydantic import ValidationError

from reddit_feed.ingestion.schemas import ResolvedPost

logger = logging.getLogger(__name__)

RawPost = Mapping[str, Any]
PriorityPredicate = Callable[[RawPost], bool]

REDDIT_WEB_BASE = "https://reddit.com"

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp")
VIDEO_EXTENSIONS = (".mp4", ".webm")

DASH_MANIFEST = "DASHPlaylist.mpd"
HLS_MANIFEST = "HLSPlaylist.m3u8"
PROGRESSIVE_SUFFIX = "DASH_720.mp4"

# Query parameters kept on v.redd.it links
VIDEO_QUERY_WHITELIST = ("source", "x", "is_copy_url")
TRACKING_PARAMS = frozenset({"utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content", "ref", "ref_source"})

# Hosts whose query string is a signature and must survive cleaning
SIGNED_HOSTS = frozenset({"external-preview.redd.it"})

_PLACEHOLDER_THUMBNAILS = frozenset({"self", "default", "nsfw", "spoiler", "image", ""})
_ESCAPED_SLASH = re.compile(r"\\/")


# =============================================================================
# URL helpers
# =============================================================================


def clean_url(url: str | None) -> str | None:
    """
    Normalize a media URL from the Reddit API.

    - Decodes HTML entities (raw_json=0 payloads carry ``&amp;``)
    - preview.redd.it → i.redd.it without the query string
    - Drops the query on plain image links (except signed hosts)
    - Keeps only playback parameters on v.redd.it links
    - Strips tracking parameters and ``source=fallback``
    - Forces https

    Returns:
        Cleaned URL, or None for empty input
    """
    if not url:
        return None

    cleaned = html.unescape(url.strip())
    cleaned = _ESCAPED_SLASH.sub("/", cleaned)
    if cleaned.startswith("//"):
        cleaned = "https:" + cleaned

    parts = urlsplit(cleaned)
    scheme = "https" if parts.scheme in ("http", "https", "") else parts.scheme
    host = parts.netloc.lower()
    path = parts.path
    query = parts.query

    if host == "preview.redd.it":
        host = "i.redd.it"
        query = ""
    elif host == "v.redd.it":
        params = [
            (k, v)
            for k, v in parse_qsl(query, keep_blank_values=True)
            if k in VIDEO_QUERY_WHITELIST and not (k == "source" and v == "fallback")
        ]
        query = urlencode(params)
    elif host not in SIGNED_HOSTS and path.lower().endswith(IMAGE_EXTENSIONS):
        query = ""
    elif query:
        params = [
            (k, v)
            for k, v in parse_qsl(query, keep_blank_values=True)
            if k not in TRACKING_PARAMS and not k.startswith("utm_")
            and not (k == "source" and v == "fallback")
        ]
        query = urlencode(params)

    return urlunsplit((scheme, host, path, query, ""))


def url_path(url: str | None) -> str:
    """Lower-cased path component of a URL (empty when missing)."""
    if not url:
        return ""
    return urlsplit(url).path.lower()


def has_image_extension(url: str | None) -> bool:
    return url_path(url).endswith(IMAGE_EXTENSIONS)


def has_video_extension(url: str | None) -> bool:
    return url_path(url).endswith(VIDEO_EXTENSIONS)


def progressive_video_url(url: str | None) -> str | None:
    """
    Turn an adaptive-manifest URL into a progressive-download one.

    ``.../DASHPlaylist.mpd?a=1`` → ``.../DASH_720.mp4``. Non-manifest URLs
    pass through with tracking parameters stripped.
    """
    if not url:
        return None
    for manifest in (DASH_MANIFEST, HLS_MANIFEST):
        if manifest in url:
            return clean_url(url.split(manifest, 1)[0] + PROGRESSIVE_SUFFIX)
    return clean_url(url)


def valid_thumbnail(post: RawPost) -> str | None:
    """The post's own thumbnail, unless it is a placeholder keyword."""
    thumbnail = post.get("thumbnail")
    if not isinstance(thumbnail, str) or thumbnail in _PLACEHOLDER_THUMBNAILS:
        return None
    if not thumbnail.startswith(("http://", "https://")):
        return None
    return clean_url(thumbnail)


def _first_preview_image(post: RawPost) -> Mapping[str, Any] | None:
    images = (post.get("preview") or {}).get("images") or []
    return images[0] if images else None


def preview_image_url(post: RawPost) -> str | None:
    """
    Highest-fidelity preview still for a post.

    Uses the preview source, else the largest listed resolution.
    """
    image = _first_preview_image(post)
    if not image:
        return None
    source = image.get("source") or {}
    if source.get("url"):
        return clean_url(source["url"])
    resolutions = image.get("resolutions") or []
    if resolutions:
        largest = max(resolutions, key=lambda r: (r.get("width") or 0) * (r.get("height") or 0))
        return clean_url(largest.get("url"))
    return None


def _preview_variant_url(post: RawPost, variant: str) -> str | None:
    image = _first_preview_image(post)
    if not image:
        return None
    source = ((image.get("variants") or {}).get(variant) or {}).get("source") or {}
    return clean_url(source.get("url"))


# =============================================================================
# Rule table
# =============================================================================


@dataclass(frozen=True)
class MediaMatch:
    """URLs a rule derived from a post."""

    is_video: bool
    display_url: str
    video_url: str | None = None
    thumbnail_url: str | None = None


@dataclass(frozen=True)
class MediaRule:
    """One row in the resolution table."""

    name: str
    applies: Callable[[RawPost], bool]
    resolve: Callable[[RawPost], MediaMatch | None]


def _image(url: str | None, thumbnail: str | None = None) -> MediaMatch | None:
    if not url:
        return None
    return MediaMatch(is_video=False, display_url=url, thumbnail_url=thumbnail or url)


def _video(video_url: str | None, poster: str | None, thumbnail: str | None = None) -> MediaMatch | None:
    if not video_url:
        return None
    display = poster or thumbnail or video_url
    return MediaMatch(
        is_video=True,
        display_url=display,
        video_url=video_url,
        thumbnail_url=thumbnail or display,
    )


def _reddit_video(post: RawPost) -> Mapping[str, Any] | None:
    for key in ("media", "secure_media"):
        video = (post.get(key) or {}).get("reddit_video")
        if video:
            return video
    return None


# --- 1. Reddit-hosted video ---------------------------------------------------


def _is_hosted_video(post: RawPost) -> bool:
    return bool(post.get("is_video")) and _reddit_video(post) is not None


def _resolve_hosted_video(post: RawPost) -> MediaMatch | None:
    video = _reddit_video(post) or {}
    # fallback_url is progressive; dash/hls are manifests
    stream = video.get("fallback_url") or video.get("dash_url") or video.get("hls_url")
    poster = preview_image_url(post)
    return _video(progressive_video_url(stream), poster, valid_thumbnail(post))


# --- 2. Gallery ---------------------------------------------------------------


def _is_gallery(post: RawPost) -> bool:
    items = (post.get("gallery_data") or {}).get("items") or []
    return bool(post.get("is_gallery")) and bool(items) and bool(post.get("media_metadata"))


def _resolve_gallery(post: RawPost) -> MediaMatch | None:
    first = post["gallery_data"]["items"][0]
    meta = (post.get("media_metadata") or {}).get(first.get("media_id")) or {}
    source = meta.get("s") or {}
    previews = meta.get("p") or []

    url = source.get("u") or source.get("gif")
    if not url and previews:
        url = previews[-1].get("u")
    return _image(clean_url(url), valid_thumbnail(post))


# --- 3. Rich embed / gifv -----------------------------------------------------


def _is_rich_embed(post: RawPost) -> bool:
    return post.get("post_hint") == "rich:video" or url_path(post.get("url")).endswith(".gifv")


def _resolve_rich_embed(post: RawPost) -> MediaMatch | None:
    url = post.get("url") or ""
    embed_preview = (post.get("preview") or {}).get("reddit_video_preview") or {}

    video_url = None
    if embed_preview.get("fallback_url"):
        video_url = progressive_video_url(embed_preview["fallback_url"])
    elif url_path(url).endswith(".gifv"):
        video_url = clean_url(re.sub(r"\.gifv(?=$|\?)", ".mp4", url))
    else:
        video_url = _preview_variant_url(post, "mp4")

    oembed = (post.get("media") or post.get("secure_media") or {}).get("oembed") or {}
    thumbnail = valid_thumbnail(post)
    poster = clean_url(oembed.get("thumbnail_url")) or preview_image_url(post) or thumbnail

    if video_url:
        return _video(video_url, poster, thumbnail)
    return _image(poster, thumbnail)


# --- 4. Direct image ----------------------------------------------------------


def _is_direct_image(post: RawPost) -> bool:
    url = post.get("url")
    return post.get("post_hint") == "image" or has_image_extension(url)


def _resolve_direct_image(post: RawPost) -> MediaMatch | None:
    url = preview_image_url(post) or clean_url(post.get("url"))
    return _image(url, valid_thumbnail(post))


# --- 5. Linked video file -----------------------------------------------------


def _is_linked_video(post: RawPost) -> bool:
    return has_video_extension(post.get("url"))


def _resolve_linked_video(post: RawPost) -> MediaMatch | None:
    thumbnail = valid_thumbnail(post)
    return _video(clean_url(post.get("url")), thumbnail or preview_image_url(post), thumbnail)


DIRECT_RULES: tuple[MediaRule, ...] = (
    MediaRule("hosted_video", _is_hosted_video, _resolve_hosted_video),
    MediaRule("gallery", _is_gallery, _resolve_gallery),
    MediaRule("rich_embed", _is_rich_embed, _resolve_rich_embed),
    MediaRule("direct_image", _is_direct_image, _resolve_direct_image),
    MediaRule("linked_video", _is_linked_video, _resolve_linked_video),
)


def match_rules(post: RawPost, rules: tuple[MediaRule, ...]) -> tuple[str, MediaMatch] | None:
    """First rule whose predicate holds and whose resolver yields a URL."""
    for rule in rules:
        if not rule.applies(post):
            continue
        match = rule.resolve(post)
        if match is not None:
            return rule.name, match
    return None


# --- 6. Crosspost (one level) -------------------------------------------------


def _crosspost_parent(post: RawPost) -> RawPost | None:
    parents = post.get("crosspost_parent_list") or []
    return parents[0] if parents else None


def _resolve_crosspost(post: RawPost) -> MediaMatch | None:
    parent = _crosspost_parent(post)
    if parent is None:
        return None
    found = match_rules(parent, DIRECT_RULES)
    if found is None:
        return None
    _, match = found
    own_thumbnail = valid_thumbnail(post)
    if own_thumbnail and match.thumbnail_url == match.display_url:
        return MediaMatch(
            is_video=match.is_video,
            display_url=match.display_url,
            video_url=match.video_url,
            thumbnail_url=own_thumbnail,
        )
    return match


# --- 7. Thumbnail fallback ----------------------------------------------------


def _resolve_thumbnail(post: RawPost) -> MediaMatch | None:
    return _image(valid_thumbnail(post))


DEFAULT_RULES: tuple[MediaRule, ...] = DIRECT_RULES + (
    MediaRule("crosspost", lambda p: _crosspost_parent(p) is not None, _resolve_crosspost),
    MediaRule("thumbnail_fallback", lambda p: valid_thumbnail(p) is not None, _resolve_thumbnail),
)


# =============================================================================
# Resolver
# =============================================================================


def is_removed(post: RawPost) -> bool:
    """Posts taken down by moderators, admins or the author."""
    return bool(post.get("removed_by_category")) or bool(post.get("removed"))


def adult_content_flag(post: RawPost) -> bool:
    return bool(post.get("over_18"))


class MediaResolver:
    """
    Resolve raw posts through an ordered rule table.

    Usage:
        resolver = MediaResolver()
        post = resolver.resolve(raw, source_name="pics")
    """

    def __init__(
        self,
        rules: tuple[MediaRule, ...] = DEFAULT_RULES,
        priority: PriorityPredicate = adult_content_flag,
    ):
        self.rules = rules
        self.priority = priority

    def match(self, raw: RawPost) -> tuple[str, MediaMatch] | None:
        return match_rules(raw, self.rules)

    def resolve(self, raw: RawPost, source_name: str | None = None) -> ResolvedPost | None:
        """
        Resolve one raw post.

        Args:
            raw: The ``data`` object of a listing child
            source_name: Source the post was fetched from; defaults to
                the post's own subreddit

        Returns:
            ResolvedPost, or None when the post is removed or has no media
        """
        post_id = raw.get("id")
        if not post_id or is_removed(raw):
            return None

        found = self.match(raw)
        if found is None:
            logger.debug(f"No media for post {post_id} (hint={raw.get('post_hint')})")
            return None

        rule_name, media = found
        permalink = raw.get("permalink") or f"/comments/{post_id}/"
        if not permalink.startswith("http"):
            permalink = f"{REDDIT_WEB_BASE}{permalink}"

        try:
            return ResolvedPost(
                id=str(post_id),
                title=html.unescape(raw.get("title") or ""),
                author=raw.get("author") or "[deleted]",
                source_name=source_name or raw.get("subreddit") or "",
                created_at=ResolvedPost.timestamp_from_epoch(raw.get("created_utc")),
                permalink=permalink,
                is_image=not media.is_video,
                is_video=media.is_video,
                display_url=media.display_url,
                video_url=media.video_url,
                thumbnail_url=media.thumbnail_url or media.display_url,
                media_rule=rule_name,
                priority_flag=bool(self.priority(raw)),
            )
        except ValidationError as e:
            logger.warning(f"Dropping post {post_id}: {e.error_count()} validation errors")
            return None


_default_resolver = MediaResolver()


def resolve(raw: RawPost, source_name: str | None = None) -> ResolvedPost | None:
    """Resolve with the default rule table and adult-content priority flag."""
    return _default_resolver.resolve(raw, source_name)
