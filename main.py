# === 📦 IMPORTS ===
import logging, time
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from cache import ResultCache
from config import LOG_LEVEL, PORT, RECS_PROVIDER
from fetcher import close_client_session
from playwright_scraper import BrowserSession
from recs import InternalError, RecsError, RecsService

# === ℹ️ LOGGING ===
start_time = time.monotonic()


class ElapsedFormatter(logging.Formatter):
    def format(self, record):
        elapsed = time.monotonic() - start_time
        record.elapsed_time = f"{elapsed:.2f}s"
        return super().format(record)


formatter_str = "%(elapsed_time)s [%(levelname)s] %(message)s"

logging.basicConfig(level=LOG_LEVEL, format=formatter_str)

for handler in logging.getLogger().handlers:
    handler.setFormatter(ElapsedFormatter(formatter_str))

for lib in ["asyncio", "urllib3", "aiohttp"]:
    logging.getLogger(lib).setLevel(logging.WARNING)

# === 🧠 SHARED STATE ===
result_cache = ResultCache()
browser_session = BrowserSession()
recs_service = RecsService(result_cache, browser_session, provider=RECS_PROVIDER)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


# === 🚀 FASTAPI ROUTES ===
@asynccontextmanager
async def lifespan(_: FastAPI):
    logging.info(f"=== RECS BACKEND STARTED - provider={RECS_PROVIDER} port={PORT} ===")
    yield

    try:
        await browser_session.shutdown()
    except Exception as e:
        logging.warning(f"SHUTDOWN ERROR - browser: {e}")

    await close_client_session()


app = FastAPI(lifespan=lifespan)


@app.middleware("http")
async def cors(request: Request, call_next):
    if request.method == "OPTIONS":
        response = Response(status_code=204)
    else:
        response = await call_next(request)
    response.headers.update(CORS_HEADERS)
    return response


@app.exception_handler(RecsError)
async def recs_error_handler(_request: Request, exc: RecsError):
    return JSONResponse(status_code=exc.status_code, content={"items": [], "error": exc.code})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(_request: Request, exc: StarletteHTTPException):
    # unknown paths and unsupported methods on known paths both count as unmatched routes
    if exc.status_code in (404, 405):
        return JSONResponse(status_code=404, content={"error": "not_found"})
    code = str(exc.detail).strip().lower().replace(" ", "_")
    return JSONResponse(status_code=exc.status_code, content={"error": code})


@app.get("/api/recs")
async def recs(v: str = ""):
    try:
        result = await recs_service.resolve(v)
    except RecsError:
        raise
    except Exception as e:
        logging.exception(f"UNEXPECTED ERROR - /api/recs?v={v}")
        raise InternalError("internal_error") from e

    return JSONResponse(content=result.to_dict())


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=PORT)
