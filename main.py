"""
Entry point for running the API with uvicorn outside a container.
"""
from __future__ import annotations

import os
import pathlib

import uvicorn

BASE_DIR = pathlib.Path(__file__).resolve().parent


def running_in_docker() -> bool:
    if os.environ.get("RUNNING_IN_DOCKER"):
        return True
    if pathlib.Path("/.dockerenv").exists():
        return True
    try:
        cgroup = pathlib.Path("/proc/1/cgroup")
        if cgroup.exists() and "docker" in cgroup.read_text():
            return True
    except OSError:
        pass
    return False


def main() -> None:
    reload_flag = os.environ.get("UVICORN_RELOAD", "")
    reload_enabled = reload_flag.lower() in {"1", "true", "yes"} and not running_in_docker()

    uvicorn.run(
        "sutra.main:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "8000")),
        reload=reload_enabled,
        reload_dirs=[str(BASE_DIR / "sutra")] if reload_enabled else None,
        log_level=os.environ.get("UVICORN_LOG_LEVEL", "info"),
    )


if __name__ == "__main__":
    main()
