"""
esync-audit — config loader.

Purpose
- Build the effective run config from four layers, later layers winning:
  built-in defaults, ``esync.toml``, ``ESYNC_*`` environment variables and
  CLI flags.

Every leaf key of the default config has exactly one environment variable,
``ESYNC_<SECTION>_<KEY>``; its default value decides how the string is parsed
(integer, boolean, comma-separated list or plain text). Relative paths are
anchored at the directory holding the config file, so a config can be moved
together with its database and snapshot.
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Any, Final

from esync_audit.config.schema import (
    PATH_FIELDS,
    assert_valid_config,
    default_config,
    merge_config,
    redact_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "esync.toml"
ENV_PREFIX: Final[str] = "ESYNC_"

_TRUE_WORDS: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_FALSE_WORDS: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})


class ConfigLoadError(ValueError):
    """The config file is missing or unreadable, or an override cannot be parsed."""


def load_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Return the validated effective config.

    ``config_path`` defaults to ``./esync.toml``, which may be absent; a path
    given explicitly must exist. ``cli_overrides`` maps dotted keys such as
    ``"checker.pool_size"`` to values; ``None`` values mean "flag not given".
    """

    explicit = config_path is not None
    path = (
        Path(config_path).expanduser().resolve()
        if explicit
        else (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    )

    config = assert_valid_config(merge_config(default_config(), _read_toml(path, explicit)))
    env = os.environ if environ is None else environ
    config = merge_config(config, _env_layer(config, env))
    config = merge_config(config, _cli_layer(cli_overrides or {}))
    config = assert_valid_config(config)

    for field_path in PATH_FIELDS:
        section, key = field_path
        config[section][key] = _anchor_path(config[section][key], path.parent)
    return config


def effective_config(config: Mapping[str, object]) -> dict[str, Any]:
    return redact_config(config)


def env_name_for_path(path: tuple[str, ...]) -> str:
    return ENV_PREFIX + "_".join(part.upper() for part in path)


def _read_toml(path: Path, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _leaves(
    payload: Mapping[str, object], prefix: tuple[str, ...] = ()
) -> Iterator[tuple[tuple[str, ...], object]]:
    for key, value in payload.items():
        if isinstance(value, Mapping):
            yield from _leaves(value, (*prefix, key))
        else:
            yield (*prefix, key), value


def _env_layer(config: Mapping[str, object], environ: Mapping[str, str]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for path, current in _leaves(config):
        name = env_name_for_path(path)
        raw = environ.get(name)
        if raw is not None:
            _assign(layer, path, _parse_env(raw.strip(), current, name, ".".join(path)))
    return layer


def _parse_env(raw: str, current: object, name: str, dotted: str) -> object:
    if isinstance(current, bool):
        word = raw.lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
        raise ConfigLoadError(
            f"{name} -> {dotted} must be a boolean (true/false/1/0/yes/no/on/off)"
        )
    if isinstance(current, int):
        try:
            return int(raw)
        except ValueError as exc:
            raise ConfigLoadError(f"{name} -> {dotted} must be an integer") from exc
    if isinstance(current, list):
        return [item.strip() for item in raw.split(",") if item.strip()]
    return raw


def _cli_layer(overrides: Mapping[str, object]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for dotted, value in overrides.items():
        if value is None:
            continue
        path = tuple(part for part in dotted.split(".") if part)
        if not path:
            raise ConfigLoadError(f"invalid CLI override key {dotted!r}")
        _assign(layer, path, value)
    return layer


def _assign(target: dict[str, Any], path: tuple[str, ...], value: object) -> None:
    for part in path[:-1]:
        target = target.setdefault(part, {})
    target[path[-1]] = value


def _anchor_path(raw: str, base_dir: Path) -> str:
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(candidate)).as_posix()


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "effective_config",
    "env_name_for_path",
    "load_config",
]
