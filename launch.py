import subprocess
import sys
import time
import requests

from config import PORT, RECS_PROVIDER

# === ⚙️ SETTINGS ===
DEFAULT_RETRIES = 20
DEFAULT_DELAY = 1


# === 🧾 LOGGING ===
def log(status: str, message: str, end="\n"):
    icons = {
        "info": "ℹ️ ",
        "success": "✅",
        "error": "❌",
        "action": "🔧",
        "waiting": "⏳",
        "build": "🚀",
    }
    print(f"\r{icons.get(status, '❔')} {message}", end=end, flush=True)


# === 🎭 PLAYWRIGHT ===
def ensure_chromium():
    if RECS_PROVIDER == "fetch":
        log("info", "Fetch provider selected, skipping Chromium install.")
        return

    log("action", "Installing Playwright Chromium...", end="")
    try:
        subprocess.run(
            [sys.executable, "-m", "playwright", "install", "chromium"],
            check=True,
            stdout=subprocess.DEVNULL,
        )
        log("success", "Chromium available.")
    except (subprocess.CalledProcessError, OSError) as e:
        log("error", f"Playwright Chromium install failed: {e}")
        sys.exit(1)


# === 🚀 SERVER ===
def start_server(port: int = PORT) -> subprocess.Popen:
    log("build", f"Starting recs backend on port {port}")
    return subprocess.Popen(
        [sys.executable, "-m", "uvicorn", "main:app", "--host", "0.0.0.0", "--port", str(port)]
    )


# === ⏳ WAITERS ===
def wait_for_service(host: str, port: int, retries=DEFAULT_RETRIES, delay=DEFAULT_DELAY) -> bool:
    # an empty id never reaches upstream, so a 400 proves the app is serving
    url = f"http://{host}:{port}/api/recs?v="
    msg = f"Waiting for http://{host}:{port}"
    log("waiting", msg, end="")

    dots = ""
    for _ in range(retries):
        try:
            if requests.get(url, timeout=2).status_code < 500:
                print("\r" + " " * (len(msg) + len(dots) + 4), end="\r")
                log("success", f"http://{host}:{port} is ready.")
                return True
        except requests.RequestException:
            pass

        dots += "."
        print(f"\r⏳ {msg}{dots}", end="", flush=True)
        time.sleep(delay)

    log("error", f"Timeout waiting for http://{host}:{port}")
    return False


def smoke_check(video_id: str, host: str = "localhost", port: int = PORT) -> int:
    log("action", f"Requesting recommendations for {video_id}")
    resp = requests.get(
        f"http://{host}:{port}/api/recs", params={"v": video_id}, timeout=60
    )
    body = resp.json()
    items = body.get("items", [])
    if resp.status_code != 200:
        log("error", f"HTTP {resp.status_code}: {body.get('error')}")
    else:
        log("success", f"{len(items)} recommendation(s) returned.")
        for item in items:
            log("info", f"{item['id']}  {item.get('duration', '--:--'):>8}  {item['title']}")
    return len(items)


# === 🚀 MAIN ===
def main():
    log("info", "=== 🚀 Recs Backend Bootstrap ===")
    ensure_chromium()
    server = start_server()

    try:
        if not wait_for_service("localhost", PORT):
            server.terminate()
            sys.exit(1)

        if len(sys.argv) > 1:
            smoke_check(sys.argv[1])

        log("success", "🎉 Recs backend operational! Ctrl+C to stop.")
        server.wait()
    except KeyboardInterrupt:
        log("action", "Stopping recs backend...")
    finally:
        if server.poll() is None:
            server.terminate()
            try:
                server.wait(timeout=15)
            except subprocess.TimeoutExpired:
                server.kill()


if __name__ == "__main__":
    main()
