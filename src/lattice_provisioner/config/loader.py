"""Read ``lattice-provisioner.yaml`` into a validated ``Config``."""

from __future__ import annotations

import logging
import os
from collections import defaultdict
from pathlib import Path
from typing import TYPE_CHECKING, Any

from dotenv import dotenv_values
from pydantic import ValidationError
from ruamel.yaml import YAML

from lattice_provisioner.config.schema import Config

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from lattice_provisioner.resources.base import Resource


class ConfigError(Exception):
    """The configuration file is unreadable or describes an invalid setup."""


# Provider fields that may come from the environment instead of YAML.
_PROVIDER_ENV_MAP: dict[str, str] = {
    "region": "AWS_REGION",
    "profile": "AWS_PROFILE",
    "endpoint_url": "LATTICE_ENDPOINT_URL",
    "workspace": "LATTICE_WORKSPACE",
    "max_attempts": "LATTICE_MAX_ATTEMPTS",
}


def _first_set(key: str, *sources: Mapping[str, Any]) -> Any:
    return next((src[key] for src in sources if src.get(key) is not None), None)


def _resolve_provider(raw_provider: dict[str, Any], config_dir: Path) -> dict[str, Any]:
    """Fill unset provider fields from the process environment, then ``config_dir/.env``.

    An explicit YAML value always wins. ``default_tags`` and other fields without
    an environment variable pass through untouched.
    """
    env_file = config_dir / ".env"
    dotenv = dotenv_values(env_file, encoding="utf-8-sig") if env_file.is_file() else {}

    resolved = {k: v for k, v in raw_provider.items() if k not in _PROVIDER_ENV_MAP}
    for field, env_key in _PROVIDER_ENV_MAP.items():
        value = raw_provider.get(field)
        if value is None:
            value = _first_set(env_key, os.environ, dotenv)
        if value is not None:
            resolved[field] = value
    return resolved


def _validate_unique_names(resources: list[Resource]) -> list[str]:
    """Report resources of one kind declared twice under the same name."""
    by_key: defaultdict[tuple[str, str], list[str]] = defaultdict(list)
    for r in resources:
        by_key[(r.namespace, r.name)].append(r.address)
    return [
        f"Duplicate {namespace} name '{name}': found in both {addresses[0]} and {addresses[1]}"
        for (namespace, name), addresses in by_key.items()
        if len(addresses) > 1
    ]


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        raw = YAML(typ="safe").load(path)
    except Exception as exc:
        raise ConfigError(f"Failed to read {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"{path}: expected a mapping at the top level")
    return raw


def load_config(path: Path | str) -> Config:
    """Parse and validate the configuration file at *path*.

    Raises:
        ConfigError: The file cannot be parsed, fails schema validation,
            or declares the same rule name twice.
    """
    path = Path(path)
    raw = _read_yaml(path)
    raw["provider"] = _resolve_provider(raw.get("provider") or {}, path.parent)

    try:
        config = Config.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc
    config.config_dir = path.parent

    if errors := _validate_unique_names(config.resources):
        raise ConfigError("\n".join(errors))

    logger.info("Loaded %d listener rule(s) from %s", len(config.resources), path)
    return config
