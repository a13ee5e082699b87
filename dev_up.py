# -----------------------------------------------------------------------------
# dev_up.py — Dev Orchestrator for the Formula Calculator
# Validates the calculator store with fcalc, boots the API (uvicorn) and the
# Streamlit page, and interleaves both logs in this terminal until one exits.
# -----------------------------------------------------------------------------

from __future__ import annotations
import atexit
import os
import sys
import time
import subprocess
import urllib.request
from pathlib import Path

# ---------------------- CONFIG ----------------------
PROJECT_ROOT = Path(__file__).parent.resolve()
SRC_DIR = str(PROJECT_ROOT / "src")
UI_FILE = PROJECT_ROOT / "ui" / "app.py"

def echo(msg: str): print(f"[dev_up] {msg}", flush=True)
def fail(msg: str, code: int = 1): echo(f"❌ {msg}"); sys.exit(code)

def load_config() -> dict:
    """.env first (if python-dotenv is around), then env vars with defaults."""
    try:
        from dotenv import load_dotenv
        if load_dotenv(PROJECT_ROOT / ".env"):
            echo("Loaded .env file")
    except ImportError:
        pass
    host = os.getenv("API_HOST", "127.0.0.1")
    cfg = {
        "api_host": host,
        "api_port": int(os.getenv("API_PORT", "8000")),
        "ui_port": int(os.getenv("UI_PORT", "8501")),
        "store": os.getenv("CALCULATORS_PATH", str(PROJECT_ROOT / "examples" / "calculators.yaml")),
        # 0.0.0.0 is bindable but not connectable
        "probe_host": "127.0.0.1" if host in ("0.0.0.0", "0") else host,
    }
    os.environ.setdefault("API_URL", f"http://{cfg['probe_host']}:{cfg['api_port']}")
    os.environ.setdefault("CALCULATORS_PATH", cfg["store"])
    return cfg

def validate_store(path: str) -> int:
    # Goes through fcalc itself, so a broken entry fails here, not at API startup.
    if SRC_DIR not in sys.path:
        sys.path.insert(0, SRC_DIR)
    try:
        from fcalc.catalog import CalculatorStore
        from fcalc.definition import CalculatorError
    except ImportError as e:
        fail(f"fcalc not importable ({e}) → pip install -e .")
    if not Path(path).exists():
        echo(f"Store {path} not found; the API starts empty and creates it on first save.")
        return 0
    try:
        return len(CalculatorStore.from_file(path).calculators)
    except CalculatorError as e:
        fail(f"Store validation failed:\n{e}")

def spawn(name: str, cmd: list) -> subprocess.Popen:
    env = os.environ.copy()
    env["PYTHONPATH"] = os.pathsep.join(p for p in (env.get("PYTHONPATH"), SRC_DIR) if p)
    echo(f"▶ Starting {name} → {' '.join(cmd)}")
    return subprocess.Popen(cmd, cwd=str(PROJECT_ROOT), env=env,
                            stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True)

def wait_healthy(url: str, timeout: float = 60.0) -> bool:
    deadline = time.time() + timeout
    while time.time() < deadline:
        try:
            with urllib.request.urlopen(url, timeout=2) as r:
                if r.status == 200:
                    return True
        except OSError:
            time.sleep(0.4)
    return False

# ---------------------- MAIN ----------------------
def main():
    echo("🚀 Launching Formula Calculator dev environment...")
    cfg = load_config()

    for mod, hint in (("uvicorn", "pip install uvicorn[standard]"), ("streamlit", "pip install streamlit")):
        try:
            __import__(mod)
        except ImportError:
            fail(f"{mod} missing → {hint}")

    echo(f"Validating {cfg['store']} ...")
    echo(f"✅ Store OK ({validate_store(cfg['store'])} calculators)")

    procs = {}

    def cleanup():
        for proc in procs.values():
            if proc.poll() is None:
                proc.terminate()
    atexit.register(cleanup)

    procs["API"] = spawn("API", [sys.executable, "-m", "uvicorn", "api.main:app",
                                 "--host", cfg["api_host"], "--port", str(cfg["api_port"]), "--reload"])
    health = f"http://{cfg['probe_host']}:{cfg['api_port']}/health"
    echo(f"⌛ Waiting for {health} ...")
    if not wait_healthy(health):
        fail("API failed to become ready in time.")
    echo("✅ API ready")

    procs["UI"] = spawn("UI", [sys.executable, "-m", "streamlit", "run", str(UI_FILE),
                               "--server.port", str(cfg["ui_port"]), "--server.headless", "true"])
    echo(f"🌐 UI: http://localhost:{cfg['ui_port']}  📘 API docs: http://localhost:{cfg['api_port']}/docs")

    try:
        while all(p.poll() is None for p in procs.values()):
            for name, proc in procs.items():
                line = proc.stdout.readline() if proc.stdout else ""
                if line:
                    print(f"[{name}] {line}", end="")
            time.sleep(0.1)
    except KeyboardInterrupt:
        echo("🛑 Ctrl+C pressed — shutting down...")
    finally:
        cleanup()
        echo("✅ All processes stopped.")

if __name__ == "__main__":
    main()
