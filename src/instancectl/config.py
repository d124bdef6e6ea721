"""Configuration loader for instancectl.

This module centralises the logic for reading configuration values from
multiple sources:

1. Built-in defaults.
2. ``/etc/instancectl/config.yml`` (or an override path).
3. Environment variables prefixed with ``INSTANCECTL_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

Environment keys map one-to-one onto the flat configuration keys and are
coerced through the same YAML loader as the config file so that booleans parse
naturally, e.g.::

    export INSTANCECTL_FOLLOW_FHS=yes
    export INSTANCECTL_OWNERSHIP=www-data:www-data

The ownership default is captured once, when the configuration is built, by
inspecting the current owner and group of ``install_root``. The resulting
configuration is exposed as an immutable dataclass that callers pass around
explicitly.
"""
from __future__ import annotations

import grp
import os
import pwd
import re
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

try:  # PyYAML is a runtime dependency (declared in pyproject.toml).
    import yaml
except Exception as exc:  # pragma: no cover - import failure covered in tests
    raise RuntimeError(
        "PyYAML is required to load instancectl configuration. Install with "
        "`pip install instancectl` or ensure PyYAML>=6.0 is available."
    ) from exc


ENV_PREFIX = "INSTANCECTL_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}

TRUTHY_STRINGS = {"1", "true", "yes", "y", "on"}
FALSY_STRINGS = {"0", "false", "no", "n", "off", ""}

_INT_TAG = "tag:yaml.org,2002:int"


class ConfigLoader(yaml.SafeLoader):
    """``SafeLoader`` without YAML 1.1 base-60 integers.

    Numeric ``uid:gid`` pairs such as ``33:33`` must stay strings.
    """


ConfigLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != _INT_TAG]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}
ConfigLoader.add_implicit_resolver(
    _INT_TAG,
    re.compile(
        r"""^(?:[-+]?0b[0-1_]+
        |[-+]?0[0-7_]+
        |[-+]?(?:0|[1-9][0-9_]*)
        |[-+]?0x[0-9a-fA-F_]+)$""",
        re.X,
    ),
    list("-+0123456789"),
)


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class Ownership:
    """A ``user:group`` pair applied to physical instance directories."""

    user: str
    group: str

    @classmethod
    def parse(cls, value: object, label: str = "ownership") -> Ownership:
        """Parse a ``user:group`` string."""
        if not isinstance(value, str):
            raise ConfigError(f"{label} must be a 'user:group' string. Got {value!r}.")
        user, sep, group = value.strip().partition(":")
        if not sep or not user or not group:
            raise ConfigError(f"{label} must be formatted as 'user:group'. Got {value!r}.")
        return cls(user=user, group=group)

    @classmethod
    def from_path(cls, path: Path) -> Ownership:
        """Return the current owner and group of *path*."""
        info = path.stat()
        return cls(user=_username(info.st_uid), group=_groupname(info.st_gid))

    def __str__(self) -> str:
        return f"{self.user}:{self.group}"


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for instancectl."""

    config_file: Path
    install_root: Path
    instances_root: Path
    ownership: Ownership | None
    follow_fhs: bool
    app_name: str
    fhs_prefix: Path
    logs_dir: Path

    def require_ownership(self) -> Ownership:
        """Return the ownership, failing when it could not be determined."""
        if self.ownership is None:
            raise ConfigError(
                f"Cannot determine directory ownership: {self.install_root} does not exist "
                "and no 'ownership' value is configured."
            )
        return self.ownership

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "install_root": str(self.install_root),
            "instances_root": str(self.instances_root),
            "ownership": str(self.ownership) if self.ownership is not None else None,
            "follow_fhs": self.follow_fhs,
            "app_name": self.app_name,
            "fhs_prefix": str(self.fhs_prefix),
            "logs_dir": str(self.logs_dir),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "/etc/instancectl/config.yml",
    "install_root": "/usr/share/app",
    "instances_root": None,  # derived from install_root when absent
    "ownership": None,  # derived from the owner of install_root when absent
    "follow_fhs": False,
    "app_name": "app",
    "fhs_prefix": "/",
    "logs_dir": "/var/log/instancectl",
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged: dict[str, object] = dict(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        merged.update(file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        merged.update(env_values)

    if overrides:
        merged.update(overrides)

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_app_config(merged)


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override)
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR])
    return Path(default_path)


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.load(path.read_text(encoding="utf-8"), Loader=ConfigLoader) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    app_name = raw.get("app_name")
    if not isinstance(app_name, (str, int)) or isinstance(app_name, bool):
        raise ConfigError(f"app_name must be a string. Got {app_name!r}.")
    app_name = str(app_name)
    if not app_name.strip():
        raise ConfigError("app_name must be a non-empty string.")
    if "/" in app_name:
        raise ConfigError(f"app_name must not contain '/'. Got {app_name!r}.")


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    config_file = _to_path(raw.get("config_file"))
    install_root = _to_path(raw.get("install_root"))
    instances_value = raw.get("instances_root")
    instances_root = (
        _to_path(instances_value) if instances_value else install_root / "instances"
    )

    ownership_value = raw.get("ownership")
    ownership: Ownership | None
    if ownership_value not in (None, ""):
        ownership = Ownership.parse(ownership_value)
    else:
        ownership = _ownership_from_install_root(install_root)

    return AppConfig(
        config_file=config_file,
        install_root=install_root,
        instances_root=instances_root,
        ownership=ownership,
        follow_fhs=_expect_bool(raw.get("follow_fhs"), "follow_fhs", default=False),
        app_name=str(raw.get("app_name")).strip(),
        fhs_prefix=_to_path(raw.get("fhs_prefix", "/")),
        logs_dir=_to_path(raw.get("logs_dir")),
    )


def _ownership_from_install_root(install_root: Path) -> Ownership | None:
    try:
        return Ownership.from_path(install_root)
    except FileNotFoundError:
        return None
    except OSError as exc:
        raise ConfigError(
            f"Cannot determine directory ownership from {install_root}: {exc}"
        ) from exc


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        name = key[len(ENV_PREFIX) :].lower()
        if not name:
            continue
        overrides[name] = _coerce_value(value)
    return overrides


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    if ":" in raw and not raw.startswith(("{", "[")):
        # ``user:group`` would otherwise parse as a YAML mapping.
        return raw
    try:
        parsed = yaml.load(raw, Loader=ConfigLoader)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _expect_bool(value: object | None, label: str, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        text = value.strip().lower()
        if text in TRUTHY_STRINGS:
            return True
        if text in FALSY_STRINGS:
            return False
        raise ConfigError(f"Invalid boolean for {label}: {value!r}.")
    raise ConfigError(f"Expected {label} to be a boolean. Got {type(value).__name__}.")


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


def _username(uid: int) -> str:
    try:
        return pwd.getpwuid(uid).pw_name
    except KeyError:  # pragma: no cover - depends on host passwd db
        return str(uid)


def _groupname(gid: int) -> str:
    try:
        return grp.getgrgid(gid).gr_name
    except KeyError:  # pragma: no cover - depends on host group db
        return str(gid)


__all__ = [
    "AppConfig",
    "ConfigError",
    "Ownership",
    "load_config",
]
