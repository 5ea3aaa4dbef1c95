#!/usr/bin/env python
"""
Launch the Patch Editor backend (FastAPI on uvicorn)

Host and port default to the ``server`` section of the settings file.

Usage:
    python run_backend.py
    python run_backend.py --config path/to/config.json --port 8080
"""

import argparse
import os
import socket
import subprocess
import sys
import time
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent
SRC_DIR = PROJECT_ROOT / "src"
sys.path.insert(0, str(SRC_DIR))

from patch_editor.settings import get_setting, init_settings


def wait_for_backend(host: str, port: int, timeout: float = 30.0) -> bool:
    """Poll until the backend accepts a TCP connection or ``timeout`` runs out"""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        try:
            with socket.create_connection((host, port), timeout=1):
                return True
        except OSError:
            time.sleep(0.5)
    return False


def main():
    parser = argparse.ArgumentParser(description="Launch the Patch Editor backend")
    parser.add_argument("--config", type=str, default=None, help="settings file (default: user config dir)")
    parser.add_argument("--host", type=str, default=None, help="bind address (default: server.host)")
    parser.add_argument("--port", type=int, default=None, help="port (default: server.port)")
    args = parser.parse_args()

    env = os.environ.copy()
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(SRC_DIR), env.get("PYTHONPATH")]))
    config_path = None
    if args.config:
        config_path = Path(args.config).resolve()
        if not config_path.exists():
            print(f"Error: Config file not found: {config_path}")
            sys.exit(1)
        env["PATCH_EDITOR_CONFIG"] = str(config_path)

    manager = init_settings(config_path)
    print(f"Using config: {manager.config_file}")
    host = args.host or get_setting("server.host", "127.0.0.1")
    port = args.port or get_setting("server.port", 8000)

    print(f"Starting backend on {host}:{port}...")
    backend_proc = subprocess.Popen(
        [sys.executable, "-m", "uvicorn", "patch_editor.api:app", "--host", host, "--port", str(port)],
        cwd=PROJECT_ROOT,
        env=env,
        creationflags=subprocess.CREATE_NEW_PROCESS_GROUP if sys.platform == "win32" else 0,
    )

    try:
        check_host = "127.0.0.1" if host in ("0.0.0.0", "") else host
        if wait_for_backend(check_host, port):
            print(f"Backend ready: http://{host}:{port}/docs")
        else:
            print("Warning: backend did not open its port in time")
        print("\nPress Ctrl+C to stop...")
        backend_proc.wait()
    except KeyboardInterrupt:
        print("\nShutting down...")
    finally:
        if backend_proc.poll() is None:
            backend_proc.terminate()
            try:
                backend_proc.wait(timeout=5)
            except subprocess.TimeoutExpired:
                backend_proc.kill()
        print("Backend stopped.")


if __name__ == "__main__":
    main()
