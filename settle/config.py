"""TOML-based waiter, retry and tag-policy configuration.

Loads ~/.settle/defaults.toml (global) and settle.toml (project), merges
them, and resolves named waiters into PollSpec values so timeouts live in
configuration passed at the call site rather than in module constants.

Example settle.toml:

    [waiters.admin_account_enabled]
    pending = ["NOT_FOUND"]
    target = ["ENABLED"]
    timeout = 300

    [retry]
    max_attempts = 4

    [tags]
    reserved_prefixes = ["aws:"]
    ignore_keys = ["CreatedBy"]
"""

from __future__ import annotations

import tomllib
from dataclasses import fields
from pathlib import Path
from typing import Any

from loguru import logger

from settle.core.exceptions import ConfigurationError
from settle.retry import RetryPolicy
from settle.tags import IgnoreConfig, KeyPredicate, reserved_prefix
from settle.types import PollSpec

type RawConfig = dict[str, Any]

GLOBAL_CONFIG_PATH = Path.home() / ".settle" / "defaults.toml"
PROJECT_CONFIG_NAME = "settle.toml"

log = logger.bind(component="config")


def _deep_merge(base: RawConfig, override: RawConfig) -> RawConfig:
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_toml(path: Path) -> RawConfig:
    if not path.is_file():
        return {}
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {path}: {e}") from e


def load_config(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> RawConfig:
    global_cfg = _read_toml(global_path or GLOBAL_CONFIG_PATH)
    project_path = (project_dir or Path.cwd()) / PROJECT_CONFIG_NAME
    project_cfg = _read_toml(project_path)

    merged = _deep_merge(global_cfg, project_cfg)
    merged.setdefault("waiters", {})
    merged.setdefault("retry", {})
    merged.setdefault("tags", {})
    return merged


_POLL_SPEC_FIELDS = frozenset(f.name for f in fields(PollSpec))
_RETRY_FIELDS = frozenset({"max_attempts", "base_delay", "max_delay", "jitter"})


def _build[T](cls: type[T], section: str, raw: RawConfig, allowed: frozenset[str]) -> T:
    if unknown := set(raw) - allowed:
        raise ConfigurationError(
            f"Unknown field(s) in [{section}]: {', '.join(sorted(unknown))}. "
            f"Valid: {', '.join(sorted(allowed))}"
        )
    try:
        return cls(**raw)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid [{section}]: {e}") from e


def resolve_poll_spec(
    name: str,
    *,
    config: RawConfig | None = None,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> PollSpec:
    config = config if config is not None else load_config(
        project_dir=project_dir, global_path=global_path
    )

    waiters = config.get("waiters", {})
    if name not in waiters:
        raise KeyError(f"Waiter '{name}' not found. Available: {', '.join(waiters) or 'none'}")

    raw = dict(waiters[name])
    for key in ("pending", "target"):
        if key in raw:
            if isinstance(raw[key], str) or not isinstance(raw[key], list):
                raise ConfigurationError(f"[waiters.{name}] {key} must be a list of states")
            raw[key] = frozenset(raw[key])
    raw.setdefault("description", name.replace("_", " "))

    spec = _build(PollSpec, f"waiters.{name}", raw, _POLL_SPEC_FIELDS)
    log.debug("Resolved waiter {name}: {spec}", name=name, spec=spec)
    return spec


def resolve_retry_policy(
    *,
    config: RawConfig | None = None,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> RetryPolicy:
    config = config if config is not None else load_config(
        project_dir=project_dir, global_path=global_path
    )
    return _build(RetryPolicy, "retry", dict(config.get("retry", {})), _RETRY_FIELDS)


def resolve_tag_policy(
    *,
    config: RawConfig | None = None,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> tuple[KeyPredicate, IgnoreConfig]:
    """Reserved-key predicate and ignore rules from the ``[tags]`` table."""
    config = config if config is not None else load_config(
        project_dir=project_dir, global_path=global_path
    )
    raw = dict(config.get("tags", {}))
    allowed = {"reserved_prefixes", "ignore_keys", "ignore_key_prefixes"}
    if unknown := set(raw) - allowed:
        raise ConfigurationError(f"Unknown field(s) in [tags]: {', '.join(sorted(unknown))}")

    for key, value in raw.items():
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ConfigurationError(f"[tags] {key} must be a list of strings")

    is_reserved = reserved_prefix(*raw.get("reserved_prefixes", ()))
    ignore = IgnoreConfig(
        keys=frozenset(raw.get("ignore_keys", ())),
        key_prefixes=tuple(raw.get("ignore_key_prefixes", ())),
    )
    return is_reserved, ignore
