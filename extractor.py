import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Iterator
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from config import MAX_ITEMS, THUMBNAIL_HOST, UPSTREAM_HOST

# === 🔎 PATTERNS ===
VIDEO_ID_RE = re.compile(r"[A-Za-z0-9_-]{6,}")
WATCH_ID_RE = re.compile(r"[?&]v=([A-Za-z0-9_-]{6,})")
DURATION_RE = re.compile(r"(?:\d{1,2}:)?\d{1,2}:\d{2}")
HEADING_LINK_RE = re.compile(
    r'<h3[^>]*class="[^"]*yt-lockup-metadata-view-model__heading-reset[^"]*"'
    r'[^>]*title="([^"]+)"[^>]*>[\s\S]*?'
    r'<a[^>]*href="/watch\?v=([A-Za-z0-9_-]{6,})[^"\']*"'
)
WATCH_HREF_RE = re.compile(r'href="/watch\?v=([A-Za-z0-9_-]{6,})[^"\']*"')

INITIAL_DATA_MARKERS = (
    "var ytInitialData = ",
    'window["ytInitialData"] = ',
    "ytInitialData = ",
)

CARD_SELECTOR = (
    "ytd-compact-video-renderer, yt-lockup-view-model, ytd-compact-movie-renderer"
)
CARD_TITLE_SELECTOR = (
    "#video-title, .yt-lockup-metadata-view-model__title, h3[title], a[title]"
)
CARD_DURATION_SELECTOR = (
    "ytd-thumbnail-overlay-time-status-renderer, "
    ".yt-badge-shape__text, "
    "badge-shape, "
    "#time-status"
)

# Order matters: "&amp;quot;" must end up as a literal quote
HTML_ENTITIES = [
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
]

BASE_URL = f"https://{UPSTREAM_HOST}/"


# === 🧱 MODELS ===
@dataclass(frozen=True)
class RecommendationItem:
    id: str
    title: str
    thumbnail_url: str
    duration_label: str | None = None

    def to_dict(self) -> dict:
        data = {"id": self.id, "title": self.title, "thumb": self.thumbnail_url}
        if self.duration_label:
            data["duration"] = self.duration_label
        return data


@dataclass
class PageSnapshot:
    """What a page source hands over for extraction.

    ``initial_data`` is the page's structured state (``ytInitialData``),
    ``rendered_html`` the serialized render tree of a browser page and
    ``document`` the raw markup of a plain HTTP fetch. Any of them may be
    missing.
    """

    initial_data: dict | None = None
    rendered_html: str | None = None
    document: str | None = None


class EntryKind(Enum):
    MODERN = "lockupViewModel"
    LEGACY = "compactVideoRenderer"
    UNRECOGNIZED = "unrecognized"


# === 🔧 UTILITIES ===
def is_valid_video_id(value: str) -> bool:
    return bool(value) and VIDEO_ID_RE.fullmatch(value) is not None


def canonical_thumbnail(video_id: str) -> str:
    return f"https://{THUMBNAIL_HOST}/vi/{video_id}/hqdefault.jpg"


def decode_entities(text: str) -> str:
    for entity, literal in HTML_ENTITIES:
        text = text.replace(entity, literal)
    return text


def make_item(
    video_id: Any,
    title: Any = None,
    thumbnail_url: Any = None,
    duration_label: Any = None,
) -> RecommendationItem | None:
    if not isinstance(video_id, str) or not is_valid_video_id(video_id):
        return None

    clean_title = decode_entities(title).strip() if isinstance(title, str) else ""
    thumb = thumbnail_url if isinstance(thumbnail_url, str) and thumbnail_url else None
    duration = (
        duration_label.strip()
        if isinstance(duration_label, str) and duration_label.strip()
        else None
    )

    return RecommendationItem(
        id=video_id,
        title=clean_title or video_id,
        thumbnail_url=thumb or canonical_thumbnail(video_id),
        duration_label=duration,
    )


def _dig(node: Any, *path) -> Any:
    for key in path:
        if isinstance(node, dict):
            node = node.get(key)
        elif isinstance(node, list) and isinstance(key, int) and -len(node) <= key < len(node):
            node = node[key]
        else:
            return None
    return node


def _text(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    if not isinstance(value, dict):
        return None
    if isinstance(value.get("simpleText"), str):
        return value["simpleText"]
    if isinstance(value.get("content"), str):
        return value["content"]
    runs = value.get("runs")
    if isinstance(runs, list):
        return "".join(
            run["text"]
            for run in runs
            if isinstance(run, dict) and isinstance(run.get("text"), str)
        )
    return None


def _absolute_url(url: Any) -> str | None:
    if not isinstance(url, str):
        return None
    url = url.strip()
    if not url or url.startswith("data:"):
        return None
    if url.startswith("//"):
        url = "https:" + url
    url = urljoin(BASE_URL, url)
    return url if url.startswith(("http://", "https://")) else None


def _image_url(source: Any) -> str | None:
    if isinstance(source, dict):
        return _absolute_url(source.get("url"))
    return None


def _match_duration(value: Any) -> str | None:
    if isinstance(value, str) and DURATION_RE.fullmatch(value.strip()):
        return value.strip()
    return None


def _overlay_duration(node: Any, inside: bool = False) -> str | None:
    if isinstance(node, dict):
        for key, value in node.items():
            lowered = str(key).lower()
            found = _overlay_duration(
                value, inside or "overlay" in lowered or "badge" in lowered
            )
            if found:
                return found
    elif isinstance(node, list):
        for value in node:
            found = _overlay_duration(value, inside)
            if found:
                return found
    elif inside:
        return _match_duration(node)
    return None


# === 🧩 STRUCTURED DATA ===
def parse_initial_data(document: str | None) -> dict | None:
    if not document:
        return None

    decoder = json.JSONDecoder()
    for marker in INITIAL_DATA_MARKERS:
        start = document.find(marker)
        if start == -1:
            continue
        try:
            data, _ = decoder.raw_decode(document, start + len(marker))
        except ValueError as e:
            logging.debug(f"INITIAL DATA PARSE FAIL - {marker.strip()}: {e}")
            continue
        if isinstance(data, dict):
            return data
    return None


def secondary_results(data: Any) -> list:
    results = _dig(
        data,
        "contents",
        "twoColumnWatchNextResults",
        "secondaryResults",
        "secondaryResults",
        "results",
    )
    if not isinstance(results, list):
        return []

    entries = []
    for entry in results:
        nested = _dig(entry, "itemSectionRenderer", "contents")
        if isinstance(nested, list):
            entries.extend(nested)
        else:
            entries.append(entry)
    return entries


def decode_entry(entry: Any) -> tuple[EntryKind, dict]:
    if isinstance(entry, dict):
        lockup = entry.get("lockupViewModel")
        if isinstance(lockup, dict) and isinstance(lockup.get("contentId"), str):
            # playlists and mixes share the lockup shape but are not watchable by id
            if lockup.get("contentType") in (None, "LOCKUP_CONTENT_TYPE_VIDEO"):
                return EntryKind.MODERN, lockup

        renderer = entry.get("compactVideoRenderer")
        if isinstance(renderer, dict) and isinstance(renderer.get("videoId"), str):
            return EntryKind.LEGACY, renderer

    return EntryKind.UNRECOGNIZED, {}


def has_structured_items(data: Any) -> bool:
    return any(
        decode_entry(entry)[0] is not EntryKind.UNRECOGNIZED
        for entry in secondary_results(data)
    )


def modern_item(lockup: dict) -> RecommendationItem | None:
    video_id = lockup.get("contentId")
    title = _text(_dig(lockup, "metadata", "lockupMetadataViewModel", "title"))

    thumb = None
    sources = _dig(lockup, "contentImage", "thumbnailViewModel", "image", "sources")
    if isinstance(sources, list) and sources:
        thumb = _image_url(sources[-1]) or _image_url(sources[0])

    return make_item(video_id, title, thumb, _overlay_duration(lockup))


def legacy_item(renderer: dict) -> RecommendationItem | None:
    video_id = renderer.get("videoId")
    title = _text(renderer.get("title"))

    thumb = None
    thumbnails = _dig(renderer, "thumbnail", "thumbnails")
    if isinstance(thumbnails, list) and thumbnails:
        thumb = _image_url(thumbnails[-1])

    duration = _dig(renderer, "lengthText", "simpleText") or _dig(
        renderer, "lengthText", "accessibility", "accessibilityData", "label"
    )
    if not isinstance(duration, str) or not duration.strip():
        duration = None
        for overlay in renderer.get("thumbnailOverlays") or []:
            status = _dig(overlay, "thumbnailOverlayTimeStatusRenderer", "text")
            duration = _match_duration(_text(status))
            if duration:
                break

    return make_item(video_id, title, thumb, duration)


# === 🪜 TIERS ===
def _structured_candidates(snapshot: PageSnapshot, kind: EntryKind, build) -> Iterator:
    if not snapshot.initial_data:
        return
    for entry in secondary_results(snapshot.initial_data):
        entry_kind, node = decode_entry(entry)
        if entry_kind is kind:
            yield build(node)


def _modern_candidates(snapshot: PageSnapshot) -> Iterator:
    yield from _structured_candidates(snapshot, EntryKind.MODERN, modern_item)


def _legacy_candidates(snapshot: PageSnapshot) -> Iterator:
    yield from _structured_candidates(snapshot, EntryKind.LEGACY, legacy_item)


def _card_title(card: Tag) -> str | None:
    title_el = card.select_one(CARD_TITLE_SELECTOR)
    if title_el is None:
        return None
    text = " ".join(title_el.get_text(" ").split())
    return text or title_el.get("title") or title_el.get("aria-label")


def _card_duration(card: Tag) -> str | None:
    for el in card.select(CARD_DURATION_SELECTOR):
        duration = _match_duration(" ".join(el.get_text(" ").split()))
        if duration:
            return duration
    return None


def card_item(card: Tag) -> RecommendationItem | None:
    link = card.select_one('a#thumbnail[href*="watch?v="]') or card.select_one('a[href*="watch?v="]')
    if link is None:
        return None

    match = WATCH_ID_RE.search(str(link.get("href", "")))
    if not match:
        return None

    img = link.select_one("img") or card.select_one("img")
    thumb = _absolute_url(img.get("src")) if img is not None else None

    return make_item(match.group(1), _card_title(card), thumb, _card_duration(card))


def _dom_candidates(snapshot: PageSnapshot) -> Iterator:
    if not snapshot.rendered_html:
        return
    soup = BeautifulSoup(snapshot.rendered_html, "lxml")
    for card in soup.select(CARD_SELECTOR):
        yield card_item(card)


def _heading_candidates(snapshot: PageSnapshot) -> Iterator:
    if snapshot.rendered_html is not None or not snapshot.document:
        return
    for match in HEADING_LINK_RE.finditer(snapshot.document):
        yield make_item(match.group(2), match.group(1))


def _raw_link_candidates(snapshot: PageSnapshot) -> Iterator:
    if snapshot.rendered_html is not None or not snapshot.document:
        return
    for match in WATCH_HREF_RE.finditer(snapshot.document):
        yield make_item(match.group(1))


TIERS: list[tuple[str, Callable[[PageSnapshot], Iterable]]] = [
    ("structured-modern", _modern_candidates),
    ("structured-legacy", _legacy_candidates),
    ("rendered-dom", _dom_candidates),
    ("raw-heading", _heading_candidates),
    ("raw-links", _raw_link_candidates),
]


# === 🧮 PIPELINE ===
def collect(candidates: Iterable, max_items: int) -> list[RecommendationItem]:
    items: list[RecommendationItem] = []
    seen = set()
    for item in candidates:
        if item is None or item.id in seen:
            continue
        seen.add(item.id)
        items.append(item)
        if len(items) >= max_items:
            break
    return items


def run_tier(name, tier, snapshot: PageSnapshot, max_items: int) -> list[RecommendationItem]:
    try:
        return collect(tier(snapshot), max_items)
    except Exception as e:
        logging.warning(f"TIER FAILED - {name}: {type(e).__name__}: {e}")
        return []


def extract(snapshot: PageSnapshot, max_items: int = MAX_ITEMS) -> list[RecommendationItem]:
    if snapshot is None or max_items <= 0:
        return []

    for name, tier in TIERS:
        items = run_tier(name, tier, snapshot, max_items)
        if items:
            logging.debug(f"EXTRACTED - {len(items)} item(s) via {name}")
            return items

    logging.info("EXTRACTED - No recommendations found in snapshot")
    return []
