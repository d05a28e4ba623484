import os
from urllib.parse import urlencode

# === ⚙️ CONFIGURATION ===
PORT = int(os.getenv("PORT", "3000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# "browser" renders the watch page with Playwright, "fetch" only downloads markup
RECS_PROVIDER = os.getenv("RECS_PROVIDER", "browser").strip().lower()

MAX_ITEMS = int(os.getenv("MAX_ITEMS", "12"))
CACHE_TTL_SECONDS = int(os.getenv("CACHE_TTL_SECONDS", str(60 * 5)))

# Playwright timeouts are in milliseconds
NAV_TIMEOUT = int(os.getenv("NAV_TIMEOUT", "20000"))
READY_TIMEOUT = int(os.getenv("READY_TIMEOUT", "10000"))
SELECTOR_TIMEOUT = int(os.getenv("SELECTOR_TIMEOUT", "10000"))
FETCH_TIMEOUT = int(os.getenv("FETCH_TIMEOUT", "15"))

UPSTREAM_HOST = "www.youtube.com"
UPSTREAM_COOKIE_DOMAIN = ".youtube.com"
THUMBNAIL_HOST = "img.youtube.com"

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
LOCALE = "en-US"
ACCEPT_LANGUAGE = "en-US,en;q=0.9"
VIEWPORT = {"width": 1280, "height": 720}

CONSENT_COOKIES = {
    "CONSENT": "YES+1",
    "PREF": "hl=en&gl=US",
}

BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--disable-blink-features=AutomationControlled",
]


def watch_url(video_id: str, **extra) -> str:
    params = {"v": video_id, "hl": "en", "gl": "US", **extra}
    return f"https://{UPSTREAM_HOST}/watch?{urlencode(params)}"
