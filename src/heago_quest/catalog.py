from __future__ import annotations

"""YAML-backed challenge catalog consumed as `list(filter)` / `create(challenge)`."""

import json
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft202012Validator

from .paths import catalog_sources


DATA_DIR = Path(__file__).resolve().parent / "data"
CHALLENGE_SCHEMA_PATH = DATA_DIR / "challenge.schema.json"
CHALLENGE_GLOB = "*.challenge.yaml"


class CatalogError(RuntimeError):
    """Catalog read/write failure, reported to the user as a notification."""

    def __init__(self, code: str, message: str, **context: Any) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        for key, value in self.context.items():
            if value is not None:
                payload[key] = value
        return payload


def _load_validator() -> Draft202012Validator:
    schema = json.loads(CHALLENGE_SCHEMA_PATH.read_text(encoding="utf-8"))
    return Draft202012Validator(schema)


def _stats(challenge: dict[str, Any]) -> dict[str, int]:
    return {
        "habits": len(challenge.get("habits", [])),
        "daily": len(challenge.get("dailies", [])),
        "todo": len(challenge.get("todos", [])),
        "rewards": len(challenge.get("rewards", [])),
    }


@dataclass
class ChallengeCatalog:
    official_root: Path
    user_root: Path
    extra_roots: list[Path] = field(default_factory=list)
    validator: Draft202012Validator = field(default_factory=_load_validator)

    @classmethod
    def from_home(cls, catalog_dir: Path) -> "ChallengeCatalog":
        extra: list[Path] = []
        seen = {DATA_DIR.resolve(), catalog_dir.resolve()}
        for candidate in catalog_sources():
            if not candidate.is_dir() or candidate in seen:
                continue
            extra.append(candidate)
            seen.add(candidate)
        return cls(official_root=DATA_DIR, user_root=catalog_dir, extra_roots=extra)

    @property
    def roots(self) -> list[Path]:
        return [self.official_root, self.user_root, *self.extra_roots]

    def _challenge_files(self) -> list[tuple[Path, bool]]:
        files: list[tuple[Path, bool]] = []
        seen: set[Path] = set()
        for root in self.roots:
            if not root.exists():
                continue
            official = root == self.official_root
            for challenge_file in sorted(root.rglob(CHALLENGE_GLOB)):
                resolved = challenge_file.resolve()
                if resolved in seen:
                    continue
                seen.add(resolved)
                files.append((resolved, official))
        return files

    def _read(self, path: Path) -> Any:
        try:
            return yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            raise CatalogError(
                "catalog_unavailable",
                "Could not load challenges.",
                file=path.name,
                error_type=exc.__class__.__name__,
            ) from exc

    def load_all(self) -> dict[str, dict[str, Any]]:
        challenges: dict[str, dict[str, Any]] = {}
        for path, official in self._challenge_files():
            data = self._read(path)
            if not isinstance(data, dict):
                continue
            challenge = data.get("challenge")
            if not isinstance(challenge, dict):
                continue
            challenge_id = challenge.get("id")
            if not isinstance(challenge_id, str) or challenge_id in challenges:
                # First source wins for duplicate ids.
                continue
            if any(True for _ in self.validator.iter_errors(challenge)):
                continue
            normalized = {
                "description": "",
                "creator": "User",
                "prize": 0,
                "participants": 0,
                "tags": [],
                "habits": [],
                "dailies": [],
                "todos": [],
                "rewards": [],
                **challenge,
                "isOfficial": official,
            }
            normalized["stats"] = _stats(normalized)
            challenges[challenge_id] = normalized
        return challenges

    def list(self, search: str | None = None, categories: list[str] | None = None) -> list[dict[str, Any]]:
        """Challenges whose title/description contain `search` and whose category is selected."""

        needle = (search or "").strip().lower()
        wanted = {item for item in (categories or []) if item}
        matches = []
        for challenge in self.load_all().values():
            text_hit = not needle or needle in challenge["title"].lower() or needle in challenge["description"].lower()
            category_hit = not wanted or challenge["category"] in wanted
            if text_hit and category_hit:
                matches.append(challenge)
        matches.sort(key=lambda item: (not item["isOfficial"], item["title"].lower()))
        return matches

    def get(self, challenge_id: str) -> dict[str, Any] | None:
        return self.load_all().get(challenge_id)

    def categories(self) -> list[str]:
        return sorted({challenge["category"] for challenge in self.load_all().values()})

    def create(self, challenge: dict[str, Any], creator: str | None = None) -> str:
        """Validate and store a user challenge; returns its new id."""

        payload = {key: value for key, value in challenge.items() if key not in {"id", "isOfficial", "stats"}}
        if creator:
            payload["creator"] = creator
        errors = sorted(self.validator.iter_errors(payload), key=lambda err: list(err.path))
        if errors:
            location = "/".join(str(part) for part in errors[0].path) or "challenge"
            raise ValueError(f"Invalid challenge at {location}: {errors[0].message}")

        challenge_id = f"user.{uuid.uuid4()}"
        payload = {"id": challenge_id, **payload}
        target = self.user_root / f"{challenge_id}.challenge.yaml"
        try:
            self.user_root.mkdir(parents=True, exist_ok=True)
            target.write_text(yaml.safe_dump({"challenge": payload}, sort_keys=False, allow_unicode=True), encoding="utf-8")
        except OSError as exc:
            raise CatalogError(
                "catalog_write_failed",
                "Could not create the challenge.",
                error_type=exc.__class__.__name__,
            ) from exc
        return challenge_id
