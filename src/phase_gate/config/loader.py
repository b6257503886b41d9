"""
phase-gate: runtime config loader.

File: src/phase_gate/config/loader.py

Purpose
- Build the effective configuration from packaged defaults, ``phase_gate.toml``,
  ``PHASE_GATE_*`` environment variables and CLI overrides.

Functional requirements
- Precedence: CLI > env > file > defaults; the merged result is schema-validated after
  each layer that can introduce user input.
- Environment variable names are derived from scalar config paths, e.g.
  ``safeguards.max_lines_changed`` -> ``PHASE_GATE_SAFEGUARDS_MAX_LINES_CHANGED``, and values
  are coerced to the type of the default they override.
- Relative paths resolve against the directory holding the config file (the working
  directory when no file is given).
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Callable, Iterator, Mapping
from pathlib import Path
from typing import Any, Final

from phase_gate.config.schema import (
    PATH_FIELDS,
    assert_valid_config,
    default_config,
    merge_config,
    redact_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "phase_gate.toml"
ENV_PREFIX: Final[str] = "PHASE_GATE_"

# Keys under these tables are artifact filenames, not fixed fields; no env binding.
_FREEFORM_TABLES: Final[frozenset[tuple[str, ...]]] = frozenset(
    {("validation", "content_min_lengths")}
)
# Optional fields absent from the defaults that still get an env binding.
_OPTIONAL_STRING_FIELDS: Final[tuple[tuple[str, ...], ...]] = (("pipeline", "catalogue_path"),)

_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_FALSY: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})

ConfigPath = tuple[str, ...]


class ConfigLoadError(ValueError):
    """Raised when config cannot be read or an override cannot be coerced."""


def load_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Return the validated effective configuration."""

    explicit = config_path is not None
    location = (
        Path(config_path).expanduser().resolve()
        if config_path is not None
        else (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    )

    effective = assert_valid_config(merge_config(default_config(), _read_toml(location, explicit)))
    env_layer = _env_layer(effective, os.environ if environ is None else environ)
    cli_layer = _cli_layer(cli_overrides or {})
    effective = assert_valid_config(merge_config(merge_config(effective, env_layer), cli_layer))
    return assert_valid_config(normalize_paths(effective, base_dir=location.parent))


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Resolve every configured path field against ``base_dir``."""

    resolved = merge_config({}, config)
    for field_path in PATH_FIELDS:
        section = resolved.get(field_path[0])
        if not isinstance(section, dict):
            continue
        raw = section.get(field_path[1])
        if isinstance(raw, str):
            section[field_path[1]] = _resolve_path(raw, base_dir)
    return resolved


def dump_effective_config(config: Mapping[str, object]) -> str:
    """Compact, key-sorted JSON of the redacted config."""

    return json.dumps(
        redact_config(config), sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )


def _read_toml(path: Path, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}
    try:
        payload = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc
    return payload


def _resolve_path(raw: str, base_dir: Path) -> str:
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(candidate)).as_posix()


# ---------------------------------------------------------------------------
# Override layers
# ---------------------------------------------------------------------------


def _env_name(path: ConfigPath) -> str:
    return ENV_PREFIX + "_".join(part.upper() for part in path)


def _scalar_fields(
    payload: Mapping[str, object], prefix: ConfigPath = ()
) -> Iterator[tuple[ConfigPath, type]]:
    for key in sorted(payload):
        path = (*prefix, key)
        value = payload[key]
        if isinstance(value, Mapping):
            if path not in _FREEFORM_TABLES:
                yield from _scalar_fields(value, path)
        elif isinstance(value, (bool, int, float, str)):
            yield path, type(value)


def _parse_bool(raw: str) -> bool:
    lowered = raw.lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise ValueError(raw)


_COERCERS: Final[Mapping[type, tuple[Callable[[str], object], str]]] = {
    bool: (_parse_bool, "a boolean (true/false/1/0/yes/no/on/off)"),
    int: (int, "an integer"),
    float: (float, "a number"),
    str: (str, "a string"),
}


def _env_layer(config: Mapping[str, object], environ: Mapping[str, str]) -> dict[str, Any]:
    slots = dict(_scalar_fields(config))
    for optional in _OPTIONAL_STRING_FIELDS:
        slots.setdefault(optional, str)

    layer: dict[str, Any] = {}
    for path, kind in sorted(slots.items()):
        name = _env_name(path)
        raw = environ.get(name)
        if raw is None:
            continue
        coerce, expected = _COERCERS[kind]
        try:
            value = coerce(raw.strip())
        except ValueError as exc:
            raise ConfigLoadError(f"{name} -> {'.'.join(path)} must be {expected}") from exc
        _put(layer, path, value)
    return layer


def _cli_layer(overrides: Mapping[str, object]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for key in sorted(overrides):
        path = tuple(part for part in key.split(".") if part)
        if not path:
            raise ConfigLoadError(f"invalid CLI override key {key!r}")
        value = overrides[key]
        _put(layer, path, merge_config({}, value) if isinstance(value, Mapping) else value)
    return layer


def _put(target: dict[str, Any], path: ConfigPath, value: object) -> None:
    node = target
    for part in path[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = node[part] = {}
        node = child
    node[path[-1]] = value


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "dump_effective_config",
    "load_config",
    "normalize_paths",
]
