"""Profile configuration loader, path resolver and secret reader."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

DEFAULT_API_BASE = "https://openrouter.ai/api/v1"
DEFAULT_PRIMARY_MODEL = "openrouter/optimus-alpha"


@dataclass(frozen=True)
class ProfilePaths:
    base_data_dir: Path
    db_path: Path
    status_path: Path
    secrets_dir: Path


@dataclass(frozen=True)
class PersonaConfig:
    name: str
    creator: str
    website: str
    support_chat: str
    capabilities: str
    short_description: str
    full_description: str


@dataclass(frozen=True)
class CompletionConfig:
    api_base_url: str
    primary_model: str
    fallback_model: str | None
    request_timeout_seconds: float
    max_retries: int
    retry_backoff_seconds: float
    dispatch_deadline_seconds: float
    site_url: str
    site_name: str


@dataclass(frozen=True)
class HistoryConfig:
    max_turns: int
    retain_turns: int
    request_turns: int


@dataclass(frozen=True)
class Profile:
    name: str
    persona: PersonaConfig
    completion: CompletionConfig
    history: HistoryConfig
    group_prefixes: list[str]
    admin_host: str
    admin_port: int
    webhook_url: str | None
    webhook_port: int
    paths: ProfilePaths


class ProfileError(ValueError):
    """Raised when profile configuration is invalid."""


def read_secret(secrets_dir: Path, filename: str, env_var: str | None = None) -> str | None:
    """Read first line of a secret file, then the env var; None if both are missing or empty."""
    path = secrets_dir / filename
    if path.exists():
        raw = path.read_text(encoding="utf-8").strip()
        if raw:
            return raw
    if env_var:
        raw = os.environ.get(env_var, "").strip()
        return raw if raw else None
    return None


def _clamp(value: Any, default: float, low: float, high: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return max(low, min(high, number))


def _validate_raw_profile(raw: dict[str, Any], expected_name: str) -> None:
    required = {"name", "persona", "completion"}
    missing = required.difference(raw.keys())
    if missing:
        missing_joined = ", ".join(sorted(missing))
        raise ProfileError(f"Missing required profile keys: {missing_joined}")

    if raw["name"] != expected_name:
        raise ProfileError(
            f"Profile filename/name mismatch: expected '{expected_name}', got '{raw['name']}'"
        )

    persona = raw["persona"]
    if not isinstance(persona, dict) or not persona.get("name") or not persona.get("creator"):
        raise ProfileError("persona must be a mapping with at least name and creator")

    if not isinstance(raw["completion"], dict):
        raise ProfileError("completion must be a mapping")

    prefixes = raw.get("group_prefixes", [".ai"])
    if not isinstance(prefixes, list) or not all(isinstance(p, str) and p.strip() for p in prefixes):
        raise ProfileError("group_prefixes must be a list of non-empty strings")


def _load_persona(raw: dict[str, Any]) -> PersonaConfig:
    name = str(raw["name"]).strip()
    creator = str(raw["creator"]).strip()
    return PersonaConfig(
        name=name,
        creator=creator,
        website=str(raw.get("website", "")).strip(),
        support_chat=str(raw.get("support_chat", "")).strip(),
        capabilities=str(raw.get("capabilities", "")).strip(),
        short_description=str(raw.get("short_description", f"{name} is an AI assistant by {creator}.")).strip(),
        full_description=str(raw.get("full_description", "")).strip(),
    )


def _load_completion(raw: dict[str, Any]) -> CompletionConfig:
    primary = str(raw.get("primary_model", DEFAULT_PRIMARY_MODEL)).strip() or DEFAULT_PRIMARY_MODEL
    fallback = str(raw.get("fallback_model") or "").strip() or None
    return CompletionConfig(
        api_base_url=str(raw.get("api_base_url", DEFAULT_API_BASE)).strip().rstrip("/") or DEFAULT_API_BASE,
        primary_model=primary,
        fallback_model=fallback,
        request_timeout_seconds=_clamp(raw.get("request_timeout_seconds"), 12.0, 1.0, 120.0),
        max_retries=int(_clamp(raw.get("max_retries"), 2, 0, 5)),
        retry_backoff_seconds=_clamp(raw.get("retry_backoff_seconds"), 1.0, 0.0, 10.0),
        dispatch_deadline_seconds=_clamp(raw.get("dispatch_deadline_seconds"), 55.0, 1.0, 600.0),
        site_url=str(raw.get("site_url", "")).strip(),
        site_name=str(raw.get("site_name", "")).strip(),
    )


def _load_history(raw: dict[str, Any]) -> HistoryConfig:
    max_turns = int(_clamp(raw.get("max_turns"), 10, 1, 200))
    retain_turns = int(_clamp(raw.get("retain_turns"), 5, 1, 200))
    request_turns = int(_clamp(raw.get("request_turns"), 3, 1, 200))
    if retain_turns > max_turns:
        raise ProfileError("history.retain_turns must not exceed history.max_turns")
    if request_turns > max_turns:
        raise ProfileError("history.request_turns must not exceed history.max_turns")
    return HistoryConfig(max_turns=max_turns, retain_turns=retain_turns, request_turns=request_turns)


def load_profile(profile_name: str, repo_root: Path | None = None, data_root: Path | None = None) -> Profile:
    """Load a profile from config and resolve data paths."""
    if repo_root is None:
        repo_root = Path(__file__).resolve().parent.parent

    profile_path = repo_root / "config" / "profiles" / f"{profile_name}.yaml"
    if not profile_path.exists():
        raise ProfileError(f"Profile not found: {profile_path}")

    with profile_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}

    if not isinstance(raw, dict):
        raise ProfileError(f"Profile file must contain a mapping: {profile_path}")

    _validate_raw_profile(raw, profile_name)

    base_data_dir = (data_root or Path.home() / "agentdata") / profile_name
    status_override = str(raw.get("status_file") or "").strip()
    paths = ProfilePaths(
        base_data_dir=base_data_dir,
        db_path=base_data_dir / "memory.db",
        status_path=Path(status_override) if status_override else base_data_dir / "status.json",
        secrets_dir=base_data_dir / "secrets",
    )

    admin = raw.get("admin") or {}
    webhook_url = str(raw.get("webhook_url") or "").strip().rstrip("/") or None
    return Profile(
        name=raw["name"],
        persona=_load_persona(raw["persona"]),
        completion=_load_completion(raw["completion"]),
        history=_load_history(raw.get("history") or {}),
        group_prefixes=[p.strip() for p in raw.get("group_prefixes", [".ai"])],
        admin_host=str(admin.get("host", "0.0.0.0")),
        admin_port=int(admin.get("port", 8600)),
        webhook_url=webhook_url,
        webhook_port=int(raw.get("webhook_port", 8443)),
        paths=paths,
    )


def ensure_profile_directories(profile: Profile) -> None:
    """Create profile directories without touching existing data."""
    profile.paths.base_data_dir.mkdir(parents=True, exist_ok=True)
    profile.paths.secrets_dir.mkdir(parents=True, exist_ok=True)
    profile.paths.status_path.parent.mkdir(parents=True, exist_ok=True)
