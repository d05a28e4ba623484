import logging
from dataclasses import dataclass

from cache import ResultCache
from config import MAX_ITEMS, RECS_PROVIDER
from extractor import RecommendationItem, extract, is_valid_video_id
from fetcher import fetch_snapshot
from playwright_scraper import BrowserSession, render_snapshot


# === ❗ ERRORS ===
class RecsError(Exception):
    status_code = 500

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


class InvalidVideoId(RecsError):
    status_code = 400


class ScrapeFailed(RecsError):
    status_code = 500


class InternalError(RecsError):
    status_code = 500


@dataclass
class RecsResult:
    items: list[RecommendationItem]
    cached: bool = False

    def to_dict(self) -> dict:
        data = {"items": [item.to_dict() for item in self.items]}
        if self.cached:
            data["cached"] = True
        return data


def validate_video_id(raw_video_id: str | None) -> str:
    video_id = (raw_video_id or "").strip()
    if not video_id:
        raise InvalidVideoId("missing_video_id")
    if not is_valid_video_id(video_id):
        raise InvalidVideoId("bad_video_id")
    return video_id


# === 🎬 ORCHESTRATION ===
class RecsService:
    """Validates an id, serves it from cache or scrapes and extracts it.

    ``provider`` selects the page source: ``"browser"`` renders the watch page
    in the shared Playwright session, ``"fetch"`` downloads the raw markup.
    """

    def __init__(
        self,
        cache: ResultCache,
        session: BrowserSession | None = None,
        provider: str = RECS_PROVIDER,
        max_items: int = MAX_ITEMS,
        render=render_snapshot,
        fetch=fetch_snapshot,
    ):
        self.cache = cache
        self.session = session if session is not None else BrowserSession()
        self.provider = provider
        self.max_items = max_items
        self._render = render
        self._fetch = fetch

    async def resolve(self, raw_video_id: str | None) -> RecsResult:
        video_id = validate_video_id(raw_video_id)

        cached = self.cache.get(video_id)
        if cached is not None:
            logging.info(f"CACHE HIT - {video_id} ({len(cached)} item(s))")
            return RecsResult(cached, cached=True)

        if self.provider == "fetch":
            items = await self._from_document(video_id)
        else:
            items = await self._from_browser(video_id)

        if items:
            self.cache.put(video_id, items)

        logging.info(f"RESULTS - {len(items)} recommendation(s) for {video_id}")
        return RecsResult(items)

    async def _from_browser(self, video_id: str) -> list[RecommendationItem]:
        try:
            async with self.session.page() as page:
                snapshot = await self._render(page, video_id)
        except Exception as e:
            logging.error(f"SCRAPE ERROR - {video_id}: {type(e).__name__}: {e}")
            raise ScrapeFailed("scrape_failed") from e

        return extract(snapshot, self.max_items)

    async def _from_document(self, video_id: str) -> list[RecommendationItem]:
        try:
            items = extract(await self._fetch(video_id), self.max_items)
            if not items:
                logging.info(f"RETRY - Nothing extracted for {video_id}, retrying with consent params")
                items = extract(await self._fetch(video_id, retry=True), self.max_items)
        except Exception as e:
            logging.error(f"FETCH ERROR - {video_id}: {type(e).__name__}: {e}")
            raise InternalError("internal_error") from e

        return items
