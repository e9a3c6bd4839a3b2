from __future__ import annotations

from pathlib import Path
from typing import Any, get_args
import os
import re

import yaml
from loguru import logger

from novella.config.schema import AppConfigRoot, ChatRoute, resolve_paths


# Scalar settings that can be set from the environment. Values stay strings;
# pydantic coerces them (ints, bools, literals) during validation.
ENV_OVERRIDES: dict[str, tuple[str, ...]] = {
    "NOVELLA_DATA_DIR": ("app", "data_dir"),
    "NOVELLA_OUTPUT_DIR": ("app", "output_dir"),
    "NOVELLA_LOG_LEVEL": ("app", "log_level"),
    "NOVELLA_IMPORT_LANGUAGE": ("import", "language"),
    "NOVELLA_IMPORT_EXTRACT_MAX_CHARS": ("import", "extract_max_chars"),
    "NOVELLA_SEGMENTER_FRONT_MATTER_THRESHOLD": ("import", "segmenter", "front_matter_threshold"),
    "NOVELLA_SEGMENTER_FALLBACK_TRIGGER_CHARS": ("import", "segmenter", "fallback_trigger_chars"),
    "NOVELLA_SEGMENTER_FALLBACK_CHUNK_CHARS": ("import", "segmenter", "fallback_chunk_chars"),
    "NOVELLA_STORAGE_BACKEND": ("storage", "backend"),
    "NOVELLA_STORAGE_KEY": ("storage", "storage_key"),
    "NOVELLA_CACHE_ENABLED": ("cache", "enabled"),
}

# Per-feature chat routes plus the image route, pointed at a named endpoint.
ROUTE_ENV_OVERRIDES: dict[str, tuple[str, ...]] = {
    **{f"NOVELLA_ROUTE_{route.upper()}": ("llm", "routes", f"{route}_chat") for route in get_args(ChatRoute)},
    "NOVELLA_ROUTE_IMAGE": ("llm", "routes", "image"),
}


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {path}")
    return data


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            base[key] = _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _parse_dotenv(dotenv_path: Path) -> dict[str, str]:
    values: dict[str, str] = {}
    if not dotenv_path.exists():
        return values
    for raw_line in dotenv_path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip().removeprefix("export ").strip()
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        if key:
            values[key] = value
    return values


def _load_dotenv(dotenv_path: Path) -> None:
    # Real environment wins over .env.
    for key, value in _parse_dotenv(dotenv_path).items():
        os.environ.setdefault(key, value)


def _provider_base_url_override_var(provider_name: str) -> str:
    normalized = re.sub(r"[^A-Za-z0-9]", "_", provider_name).upper()
    return f"NOVELLA_LLM_PROVIDER_{normalized}_BASE_URL"


def _set_path(config_data: dict[str, Any], path: tuple[str, ...], value: Any) -> None:
    node = config_data
    for key in path[:-1]:
        child = node.get(key)
        if not isinstance(child, dict):
            child = {}
            node[key] = child
        node = child
    node[path[-1]] = value


def _apply_env(config_data: dict[str, Any]) -> list[str]:
    """Apply environment overrides in place and return the variable names used."""
    applied: list[str] = []

    for env_name, path in {**ENV_OVERRIDES, **ROUTE_ENV_OVERRIDES}.items():
        value = os.getenv(env_name)
        if value:
            _set_path(config_data, path, value)
            applied.append(env_name)

    llm = config_data.get("llm")
    if isinstance(llm, dict):
        for provider_name, provider_cfg in llm.get("providers", {}).items():
            if not isinstance(provider_cfg, dict):
                continue
            env_name = _provider_base_url_override_var(provider_name)
            base_url_override = os.getenv(env_name)
            if base_url_override:
                provider_cfg["base_url"] = base_url_override
                applied.append(env_name)

    return applied


def load_config(
    config_path: Path | None = None,
    profile: str | None = None,
    overrides: dict[str, Any] | None = None,
) -> AppConfigRoot:
    """Build the effective config.

    Layers, lowest first: ``configs/default.yaml``, ``configs/profiles/<profile>.yaml``,
    ``config_path``, ``overrides`` (CLI flags), then ``NOVELLA_*`` environment
    variables. ``.env`` in the working directory is read into the environment
    before anything else. Relative paths resolve against the working directory.
    """
    base_dir = Path.cwd()
    _load_dotenv(base_dir / ".env")

    layers: list[tuple[str, dict[str, Any]]] = [("default", _read_yaml(base_dir / "configs" / "default.yaml"))]
    if profile:
        profile_path = base_dir / "configs" / "profiles" / f"{profile}.yaml"
        if not profile_path.exists():
            logger.warning("Config profile not found: {}", profile_path)
        layers.append((f"profile:{profile}", _read_yaml(profile_path)))
    if config_path:
        layers.append((f"file:{config_path}", _read_yaml(config_path)))
    if overrides:
        layers.append(("cli", overrides))

    config_data: dict[str, Any] = {}
    for source, data in layers:
        if data:
            config_data = _deep_merge(config_data, data)
            logger.debug("Config layer applied source={}", source)

    env_applied = _apply_env(config_data)
    if env_applied:
        logger.debug("Config env overrides applied: {}", ", ".join(env_applied))

    config = AppConfigRoot.model_validate(config_data)
    return resolve_paths(config, base_dir)


def masked_env_snapshot(config: AppConfigRoot | None = None) -> dict[str, str | None]:
    """Environment overrides in effect, plus the endpoint each route resolves to. API keys are masked."""
    snapshot: dict[str, str | None] = {name: os.getenv(name) for name in {**ENV_OVERRIDES, **ROUTE_ENV_OVERRIDES}}

    if config is None:
        return snapshot

    for route in get_args(ChatRoute):
        endpoint_name, endpoint, _ = config.llm.resolve_chat_route(route)
        snapshot[f"route.{route}"] = f"{endpoint_name} ({endpoint.model})"
    image_name, image_endpoint, _ = config.llm.resolve_image_route()
    snapshot["route.image"] = f"{image_name} ({image_endpoint.model})"

    for provider_name, provider in config.llm.providers.items():
        override_var = _provider_base_url_override_var(provider_name)
        snapshot[override_var] = os.getenv(override_var)
        snapshot[f"llm.providers.{provider_name}.base_url"] = provider.base_url

        if provider.api_key_env:
            snapshot[provider.api_key_env] = "***" if os.getenv(provider.api_key_env) else None

    return snapshot
