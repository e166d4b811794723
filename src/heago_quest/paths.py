from __future__ import annotations

import getpass
import os
import sys
from datetime import tzinfo
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


DEFAULT_RESET_CHECK_SECONDS = 60


def tracker_home() -> Path:
    configured = os.environ.get("HEAGO_HOME")
    if configured:
        return Path(configured).expanduser().resolve()
    return Path.home() / ".heago"


def ensure_home_dirs(base: Path) -> dict[str, Path]:
    state = base / "state"
    telemetry = base / "telemetry"
    catalog = base / "catalog"
    for path in (base, state, telemetry, catalog):
        path.mkdir(parents=True, exist_ok=True)
    return {"base": base, "state": state, "telemetry": telemetry, "catalog": catalog}


def configured_timezone() -> tzinfo | None:
    """Zone used for calendar-day decisions; None means the system local zone."""

    name = os.environ.get("HEAGO_TIMEZONE", "").strip()
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        print(f"[config] unknown HEAGO_TIMEZONE {name!r}, using system zone", file=sys.stderr)
        return None


def reset_check_seconds() -> int:
    raw = os.environ.get("HEAGO_RESET_CHECK_SECONDS", "").strip()
    if not raw:
        return DEFAULT_RESET_CHECK_SECONDS
    try:
        value = int(raw)
    except ValueError:
        return DEFAULT_RESET_CHECK_SECONDS
    if value <= 0:
        return DEFAULT_RESET_CHECK_SECONDS
    return value


def catalog_sources() -> list[Path]:
    raw_sources = os.environ.get("HEAGO_CATALOG_SOURCES", "").strip()
    if not raw_sources:
        return []
    return [Path(raw).expanduser().resolve() for raw in raw_sources.split(os.pathsep) if raw.strip()]


def local_user() -> str | None:
    configured = os.environ.get("HEAGO_USER")
    if configured is not None:
        return configured.strip() or None
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return None
