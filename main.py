"""Void Echoes: dev launcher. Starts the API server in watch mode."""

import argparse
import os
import signal
import subprocess
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = os.getenv("PORT", "13013")


def main():
    parser = argparse.ArgumentParser(description="Void Echoes dev launcher")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Data storage directory (default: ./data)")
    parser.add_argument("--reset-echoes", action="store_true",
                        help="Forget the broken rules of past runs before starting")
    args = parser.parse_args()

    data_dir = args.data_dir or Path(os.getenv("DATA_DIR", ROOT / "data"))
    if args.reset_echoes:
        from void_echoes.storage import Storage
        Storage(data_dir).clear_echoes()

    # Build env for the subprocess so the server picks up the same data dir
    env = os.environ.copy()
    env["DATA_DIR"] = str(Path(data_dir).resolve())

    procs: list[subprocess.Popen] = []

    def shutdown(*_):
        print("\nShutting down...")
        for p in procs:
            p.terminate()
        for p in procs:
            p.wait()
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    print(f"Starting server on http://localhost:{PORT} ...")
    procs.append(subprocess.Popen(
        [sys.executable, "-m", "uvicorn", "void_echoes.app:app", "--reload",
         "--host", HOST, "--port", PORT],
        cwd=ROOT, env=env,
    ))

    for p in procs:
        p.wait()


if __name__ == "__main__":
    main()
