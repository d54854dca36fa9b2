"""
main.py — Unified launcher for the town information dashboard.

Usage:
    python main.py

Starts the dashboard backend and the Streamlit frontend as subprocesses,
waits for both to be healthy, then prints the URL. Press Ctrl-C to exit;
all servers are terminated cleanly on exit.
"""

import os
import sys
import subprocess
import time
from pathlib import Path

import httpx
from dotenv import load_dotenv

# ── Configuration ─────────────────────────────────────────────────────────────

ROOT = Path(__file__).parent
load_dotenv(dotenv_path=ROOT / ".env")

DASHBOARD_PORT = int(os.getenv("DASHBOARD_PORT", "8001"))
FRONTEND_PORT = int(os.getenv("FRONTEND_PORT", "8501"))

DASHBOARD_HEALTH_URL = f"http://localhost:{DASHBOARD_PORT}/health"
FRONTEND_HEALTH_URL = f"http://localhost:{FRONTEND_PORT}/_stcore/health"


# ── Health polling ─────────────────────────────────────────────────────────────

def _wait_for_health(url: str, timeout: int) -> bool:
    """Poll GET url until status 200 or timeout (seconds). Returns True on success."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        try:
            if httpx.get(url, timeout=1.0).status_code == 200:
                return True
        except httpx.RequestError:
            pass
        time.sleep(0.5)
    return False


# ── Graceful shutdown ──────────────────────────────────────────────────────────

def _shutdown(procs: list, log_files: list) -> None:
    """SIGTERM all processes, wait up to 5 s each, then SIGKILL stragglers."""
    for p in procs:
        p.terminate()
    for p in procs:
        try:
            p.wait(timeout=5)
        except subprocess.TimeoutExpired:
            p.kill()
    for f in log_files:
        f.close()


def _start(label: str, args: list, cwd: Path, log_name: str, health_url: str,
           timeout: int, procs: list, log_files: list) -> None:
    print(f"Starting {label}...", end=" ", flush=True)
    log = open(ROOT / log_name, "w")
    log_files.append(log)
    procs.append(subprocess.Popen(args, cwd=cwd, stdout=log, stderr=subprocess.STDOUT))

    if not _wait_for_health(health_url, timeout=timeout):
        print("FAILED")
        print(
            f"Error: {label} did not become healthy within {timeout} s.\n"
            f"Check {log_name} for details.",
            file=sys.stderr,
        )
        _shutdown(procs, log_files)
        sys.exit(1)
    print("OK")


# ── Entry point ────────────────────────────────────────────────────────────────

def main() -> None:
    log_files = []
    procs = []

    try:
        print(
            "╔══════════════════════════════════════╗\n"
            "║   Town Info Dashboard                ║\n"
            f"║   Backend  → http://localhost:{DASHBOARD_PORT}   ║\n"
            f"║   Frontend → http://localhost:{FRONTEND_PORT}   ║\n"
            "║   Logs  → dashboard_server.log       ║\n"
            "║           frontend.log               ║\n"
            "╚══════════════════════════════════════╝"
        )

        _start(
            "dashboard backend",
            [sys.executable, "dashboard_server.py"],
            cwd=ROOT / "backend",
            log_name="dashboard_server.log",
            health_url=DASHBOARD_HEALTH_URL,
            timeout=15,
            procs=procs,
            log_files=log_files,
        )
        _start(
            "Streamlit frontend",
            [sys.executable, "-m", "streamlit", "run", "frontend/app.py",
             "--server.port", str(FRONTEND_PORT),
             "--server.headless", "true"],
            cwd=ROOT,
            log_name="frontend.log",
            health_url=FRONTEND_HEALTH_URL,
            timeout=30,
            procs=procs,
            log_files=log_files,
        )

        print(f"\nOpen your browser at: http://localhost:{FRONTEND_PORT}")
        print("Press Ctrl-C to stop all services.\n")

        # Keep the launcher alive until interrupted
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            print()

    finally:
        print("Shutting down...")
        _shutdown(procs, log_files)


if __name__ == "__main__":
    main()
