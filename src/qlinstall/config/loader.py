# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/qlinstall/config/loader.py

import logging
import os
from pathlib import Path
from typing import Dict, Optional, Tuple

import yaml
from pydantic import ValidationError

from ..errors import ConfigError
from .models import InstallerConfig, PackageProfile

log = logging.getLogger("qlinstall")

DATA_DIR = Path(__file__).parent / "data"


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Recursively merge *override* into *base* (mutates base).
    Only overwrites when the override value is non-empty.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            _deep_merge(base[key], value)
        else:
            if value not in (None, ""):
                base[key] = value
    return base


def _find_secrets_file(config_path: Optional[Path]) -> Optional[Path]:
    """
    Locate secrets.yaml using this priority:

    1. QLINSTALL_SECRETS_FILE environment variable (explicit override)
    2. secrets.yaml in the same directory as the installer config
    """
    env = os.environ.get("QLINSTALL_SECRETS_FILE")
    if env:
        p = Path(env)
        if p.is_file():
            return p
        log.warning("QLINSTALL_SECRETS_FILE=%s does not exist, skipping", env)
        return None

    if config_path is not None:
        p = config_path.parent / "secrets.yaml"
        if p.is_file():
            return p

    return None


def _load_yaml(path: Path) -> dict:
    """Load a YAML file, expanding ${ENV_VAR} references."""
    try:
        raw = path.read_text()
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e
    expanded = os.path.expandvars(raw)
    try:
        data = yaml.safe_load(expanded) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")
    return data


def load_config(path: Optional[str | Path] = None) -> InstallerConfig:
    """
    Load and validate the installer config.

    With no path, built-in defaults are used (still merged with a secrets
    file named by QLINSTALL_SECRETS_FILE, if any). Secrets such as the
    service password or Steam credentials can live in a secrets.yaml next
    to the config; it mirrors the config structure and is deep-merged before
    validation. ``${ENV_VAR}`` placeholders are expanded in both files.
    """
    config_path = Path(path) if path else None
    data = _load_yaml(config_path) if config_path else {}

    secrets_path = _find_secrets_file(config_path)
    if secrets_path:
        log.debug("Merging secrets from %s", secrets_path)
        _deep_merge(data, _load_yaml(secrets_path))
    else:
        log.debug("No secrets.yaml found, proceeding without secrets merge")

    try:
        return InstallerConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid installer config: {e}") from e


def load_profiles(path: Optional[Path] = None) -> Dict[str, PackageProfile]:
    """Read the per-release package table (anchors prefixed with '_' are ignored)."""
    raw = _load_yaml(path or DATA_DIR / "packages.yml")
    profiles = raw.get("profiles") or {}
    try:
        return {
            str(version): PackageProfile.model_validate({"version": str(version), **spec})
            for version, spec in profiles.items()
        }
    except ValidationError as e:
        raise ConfigError(f"Invalid package profile table: {e}") from e


def version_key(version: str) -> Tuple[int, ...]:
    parts = []
    for piece in version.split("."):
        digits = "".join(ch for ch in piece if ch.isdigit())
        parts.append(int(digits) if digits else 0)
    return tuple(parts)


def resolve_profile(version: str, profiles: Dict[str, PackageProfile]) -> Tuple[PackageProfile, bool]:
    """
    Pick the package profile for an OS release.

    Returns (profile, exact). A version with no entry maps to the newest
    profile if it is newer than all of them, the oldest if older than all,
    and otherwise the closest older profile. exact=False tells the caller
    to ask the operator before using it.
    """
    if not profiles:
        raise ConfigError("No package profiles defined")
    if version in profiles:
        return profiles[version], True

    ordered = sorted(profiles.values(), key=lambda p: version_key(p.version))
    wanted = version_key(version)
    if wanted > version_key(ordered[-1].version):
        return ordered[-1], False
    if wanted < version_key(ordered[0].version):
        return ordered[0], False
    older = [p for p in ordered if version_key(p.version) <= wanted]
    return older[-1], False


def _answer(value: object) -> object:
    # YAML reads an unquoted yes/no as a bool; prompts compare text
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, list):
        return [_answer(v) for v in value]
    return str(value)


def load_answers(path: str | Path) -> Dict[str, object]:
    """Scripted prompt answers for unattended runs (key -> value or list)."""
    return {str(k): _answer(v) for k, v in _load_yaml(Path(path)).items()}
