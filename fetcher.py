import asyncio
import logging

from aiohttp import ClientSession, ClientTimeout

from config import ACCEPT_LANGUAGE, CONSENT_COOKIES, FETCH_TIMEOUT, USER_AGENT, watch_url
from extractor import PageSnapshot, parse_initial_data

BASE_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept-Language": ACCEPT_LANGUAGE,
    "Cookie": "; ".join(f"{name}={value}" for name, value in CONSENT_COOKIES.items()),
}

# Second attempt when the first page came back without recommendations
RETRY_PARAMS = {
    "bpctr": "9999999999",
    "has_verified": "1",
    "persist_hl": "1",
    "persist_gl": "1",
}

timeout_obj = ClientTimeout(total=FETCH_TIMEOUT)
client_session: ClientSession | None = None
_session_lock = asyncio.Lock()


async def get_client_session() -> ClientSession:
    global client_session
    async with _session_lock:
        if client_session is None or client_session.closed:
            client_session = ClientSession(timeout=timeout_obj, headers=BASE_HEADERS)
    return client_session


async def close_client_session():
    global client_session
    if client_session is not None and not client_session.closed:
        try:
            await client_session.close()
        except Exception as e:
            logging.warning(f"Failed to close client session: {e}")
    client_session = None


async def fetch_document(url: str) -> str:
    session = await get_client_session()
    async with session.get(url) as resp:
        if resp.status >= 400:
            logging.warning(f"FETCH STATUS - {url}: HTTP {resp.status}")
            return ""
        return await resp.text(errors="replace")


async def fetch_snapshot(video_id: str, retry: bool = False) -> PageSnapshot:
    url = watch_url(video_id, **RETRY_PARAMS) if retry else watch_url(video_id)
    document = await fetch_document(url)
    return PageSnapshot(initial_data=parse_initial_data(document), document=document)
