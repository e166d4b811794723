from __future__ import annotations

"""Append-only local event log, sanitization and windowed summaries."""

import json
import platform
import re
import sys
import unicodedata
import uuid
from collections import Counter
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from importlib.metadata import PackageNotFoundError, version as package_version
from pathlib import Path
from typing import Any


SCHEMA_VERSION = "0.1"
VALID_EVENT_TYPES = {
    "tracker.started",
    "state.recovered",
    "state.migrated",
    "habit.tapped",
    "daily.toggled",
    "todo.toggled",
    "reward.purchased",
    "reward.declined",
    "player.leveled_up",
    "entity.added",
    "entity.removed",
    "dailies.reset",
    "challenge.created",
    "challenge.joined",
    "catalog.failed",
    "session.signed_out",
    "risk.flagged",
}
VALID_SOURCES = {"cli", "api", "scheduler", "system"}
MAX_STRING_LENGTH = 200
RANGE_PATTERN = re.compile(r"^(\d+)([dh])$")


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


def _utc_now_rfc3339() -> str:
    return _utc_now().replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _parse_ts(value: str) -> datetime | None:
    if not isinstance(value, str):
        return None
    normalized = value.replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def _safe_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=True)


def _strip_control_chars(value: str) -> str:
    return "".join(ch for ch in value if not unicodedata.category(ch).startswith("C"))


@dataclass(frozen=True)
class BuildInfo:
    """Static build/runtime metadata attached to every event."""

    tracker_version: str
    python_version: str
    platform: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "tracker_version": self.tracker_version,
            "python_version": self.python_version,
            "platform": self.platform,
        }


def _sanitize_text(value: str) -> tuple[str, bool]:
    cleaned = _strip_control_chars(value).strip()
    if len(cleaned) > MAX_STRING_LENGTH:
        return f"{cleaned[:MAX_STRING_LENGTH]}...[truncated]", True
    return cleaned, False


def sanitize_event_data(data: Any) -> tuple[Any, int]:
    """Recursively strip control characters and truncate long strings.

    Returns the cleaned payload and the number of truncated fields.
    """

    if isinstance(data, dict):
        sanitized: dict[str, Any] = {}
        truncated = 0
        for key, value in data.items():
            key_text, key_cut = _sanitize_text(str(key))
            value_clean, value_cut = sanitize_event_data(value)
            sanitized[key_text] = value_clean
            truncated += int(key_cut) + value_cut
        return sanitized, truncated
    if isinstance(data, (list, tuple)):
        items = [sanitize_event_data(item) for item in data]
        return [item for item, _ in items], sum(cut for _, cut in items)
    if data is None or isinstance(data, (bool, int, float)):
        return data, 0
    text, cut = _sanitize_text(str(data))
    return text, int(cut)


def parse_range(range_value: str) -> timedelta:
    """Parse compact duration windows such as `7d` or `24h`."""

    match = RANGE_PATTERN.match(range_value.strip().lower())
    if not match:
        raise ValueError("range must be like 7d or 24h")
    amount = int(match.group(1))
    unit = match.group(2)
    if amount <= 0:
        raise ValueError("range amount must be > 0")
    if unit == "d":
        return timedelta(days=amount)
    return timedelta(hours=amount)


def detect_tracker_version() -> str:
    try:
        return package_version("heago-quest")
    except PackageNotFoundError:
        return "0.1.0"


class TelemetryLogger:
    """Append-only JSONL event log kept next to the save snapshot."""

    def __init__(self, events_path: Path) -> None:
        self.events_path = events_path
        self.events_path.parent.mkdir(parents=True, exist_ok=True)
        self.build = BuildInfo(
            tracker_version=detect_tracker_version(),
            python_version=sys.version.split()[0],
            platform=platform.platform(),
        )

    def _normalize_source(self, source: str) -> str:
        if source in VALID_SOURCES:
            return source
        return "system"

    def _append_jsonl(self, payload: dict[str, Any]) -> None:
        self.events_path.parent.mkdir(parents=True, exist_ok=True)
        with self.events_path.open("a", encoding="utf-8", newline="\n") as handle:
            handle.write(_safe_json(payload))
            handle.write("\n")

    def _base_event(self, *, event_type: str, source: str, data: dict[str, Any]) -> dict[str, Any]:
        if event_type not in VALID_EVENT_TYPES:
            data = {"reason": "invalid_event_type", "requested_event_type": event_type}
            event_type = "risk.flagged"
        return {
            "schema_version": SCHEMA_VERSION,
            "event_id": str(uuid.uuid4()),
            "ts": _utc_now_rfc3339(),
            "event_type": event_type,
            "source": self._normalize_source(source),
            "build": self.build.to_dict(),
            "data": data,
        }

    def log_event(self, event_type: str, *, source: str, data: dict[str, Any]) -> None:
        """Write one sanitized event; failures are reported on stderr only."""

        try:
            sanitized, _ = sanitize_event_data(data)
            payload = self._base_event(
                event_type=event_type,
                source=source,
                data=sanitized if isinstance(sanitized, dict) else {"value": sanitized},
            )
            self._append_jsonl(payload)
        except Exception as exc:  # noqa: BLE001
            print(f"[telemetry] failed to append event: {exc}", file=sys.stderr)

    def iter_events(self) -> list[dict[str, Any]]:
        if not self.events_path.exists():
            return []
        events: list[dict[str, Any]] = []
        with self.events_path.open("r", encoding="utf-8") as handle:
            for line in handle:
                line = line.strip()
                if not line:
                    continue
                try:
                    payload = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if isinstance(payload, dict):
                    events.append(payload)
        return events

    def count_events(self) -> int:
        return len(self.iter_events())

    def purge(self) -> bool:
        if not self.events_path.exists():
            return False
        self.events_path.unlink()
        return True

    def export_summary(self, *, range_value: str, out_path: Path | None = None) -> dict[str, Any]:
        """Aggregate event counts and XP/gold totals over a trailing window."""

        window = parse_range(range_value)
        end = _utc_now()
        start = end - window
        in_window = []
        for event in self.iter_events():
            parsed_ts = _parse_ts(event.get("ts"))
            if parsed_ts is None or not (start <= parsed_ts <= end):
                continue
            in_window.append(event)

        by_type = Counter(str(event.get("event_type")) for event in in_window)
        xp_total = 0
        gold_earned = 0
        for event in in_window:
            effect = event.get("data", {}).get("effect")
            if not isinstance(effect, dict):
                continue
            xp_total += int(effect.get("xp_granted", 0) or 0)
            gold_delta = int(effect.get("gold_delta", 0) or 0)
            if gold_delta > 0:
                gold_earned += gold_delta

        summary = {
            "schema_version": SCHEMA_VERSION,
            "generated_at": _utc_now_rfc3339(),
            "range": range_value,
            "events_considered": len(in_window),
            "events_by_type": dict(sorted(by_type.items())),
            "xp_granted_total": xp_total,
            "gold_earned_total": gold_earned,
            "level_ups": by_type.get("player.leveled_up", 0),
            "resets": by_type.get("dailies.reset", 0),
        }
        if out_path is not None:
            out_path.parent.mkdir(parents=True, exist_ok=True)
            out_path.write_text(json.dumps(summary, indent=2), encoding="utf-8")
        return summary
