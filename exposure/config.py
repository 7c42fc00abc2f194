from __future__ import annotations

import os
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def load_env(env_file: str | Path | None = None) -> Path | None:
    """Load the first .env candidate without overriding the process environment."""
    if env_file is not None:
        path = Path(env_file)
        if path.exists():
            load_dotenv(path, override=False)
            return path
        return None

    env_candidates = [
        Path.cwd() / ".env",
        PROJECT_ROOT / ".env",
    ]
    for candidate in env_candidates:
        if candidate.exists():
            load_dotenv(candidate, override=False)
            return candidate
    discovered = find_dotenv(usecwd=True)
    if discovered:
        load_dotenv(discovered, override=False)
        return Path(discovered)
    return None


def output_dir() -> Path:
    configured = os.getenv("EXPOSURE_OUTPUT_DIR", "fixtures/output")
    path = Path(configured)
    return path if path.is_absolute() else PROJECT_ROOT / path


def fetch_timeout_seconds() -> float:
    return float(os.getenv("EXPOSURE_FETCH_TIMEOUT_SECONDS", "30"))


def fetch_max_workers() -> int:
    return max(1, int(os.getenv("EXPOSURE_FETCH_MAX_WORKERS", "6")))


def default_adapter_ids() -> list[str]:
    raw = os.getenv("EXPOSURE_ADAPTERS", "ethena,euler,resolv")
    return [item.strip().lower() for item in raw.split(",") if item.strip()]
