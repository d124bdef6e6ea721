"""Configuration loader tests."""
from __future__ import annotations

from pathlib import Path

import pytest

from instancectl.config import AppConfig, ConfigError, Ownership, load_config


def test_load_config_defaults_when_file_missing(tmp_path: Path) -> None:
    """Defaults apply when no config file is present."""
    config = load_config(config_file=tmp_path / "absent.yml", env={})

    assert isinstance(config, AppConfig)
    assert config.install_root == Path("/usr/share/app")
    assert config.instances_root == Path("/usr/share/app/instances")
    assert config.follow_fhs is False
    assert config.app_name == "app"
    assert config.fhs_prefix == Path("/")
    assert config.logs_dir == Path("/var/log/instancectl")


def test_ownership_defaults_to_install_root_owner(tmp_path: Path) -> None:
    """Ownership is captured from the installation directory."""
    install_root = tmp_path / "share"
    install_root.mkdir()

    config = load_config(env={"INSTANCECTL_INSTALL_ROOT": str(install_root)})

    assert config.ownership == Ownership.from_path(install_root)
    assert config.instances_root == install_root / "instances"


def test_ownership_unknown_when_install_root_missing(tmp_path: Path) -> None:
    """A missing installation directory leaves ownership undetermined."""
    config = load_config(env={"INSTANCECTL_INSTALL_ROOT": str(tmp_path / "missing")})

    assert config.ownership is None
    with pytest.raises(ConfigError, match="ownership"):
        config.require_ownership()


def test_load_config_reads_yaml_file(tmp_path: Path) -> None:
    """Values are loaded from the YAML override file."""
    cfg = tmp_path / "instancectl.yml"
    cfg.write_text(
        "ownership: www-data:www-data\n"
        "follow_fhs: yes\n"
        "app_name: redmine\n"
        f"instances_root: {tmp_path / 'instances'}\n",
        encoding="utf-8",
    )

    config = load_config(config_file=cfg, env={})

    assert config.config_file == cfg
    assert config.ownership == Ownership(user="www-data", group="www-data")
    assert config.follow_fhs is True
    assert config.app_name == "redmine"
    assert config.instances_root == tmp_path / "instances"


def test_config_file_env_var_selects_file(tmp_path: Path) -> None:
    """The config file location can come from the environment."""
    cfg = tmp_path / "other.yml"
    cfg.write_text("app_name: wiki\n", encoding="utf-8")

    config = load_config(env={"INSTANCECTL_CONFIG_FILE": str(cfg)})

    assert config.config_file == cfg
    assert config.app_name == "wiki"


def test_env_overrides_take_precedence(tmp_path: Path) -> None:
    """Environment variables override defaults and file settings."""
    cfg = tmp_path / "instancectl.yml"
    cfg.write_text("follow_fhs: false\nownership: a:b\n", encoding="utf-8")
    env = {
        "INSTANCECTL_FOLLOW_FHS": "yes",
        "INSTANCECTL_OWNERSHIP": "redmine:www-data",
        "INSTANCECTL_LOGS_DIR": str(tmp_path / "logs"),
        "INSTANCECTL_FHS_PREFIX": str(tmp_path / "fhs"),
    }

    config = load_config(config_file=cfg, env=env)

    assert config.follow_fhs is True
    assert config.ownership == Ownership(user="redmine", group="www-data")
    assert config.logs_dir == tmp_path / "logs"
    assert config.fhs_prefix == tmp_path / "fhs"


def test_programmatic_overrides_win(tmp_path: Path) -> None:
    """Explicit overrides beat the environment."""
    config = load_config(
        config_file=tmp_path / "absent.yml",
        env={"INSTANCECTL_APP_NAME": "from-env"},
        overrides={"app_name": "from-flag"},
    )

    assert config.app_name == "from-flag"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("1", True), ("true", True), ("on", True), ("y", True), ("0", False), ("off", False), ("n", False)],
)
def test_follow_fhs_accepts_boolean_like_strings(
    tmp_path: Path,
    raw: str,
    expected: bool,
) -> None:
    """Boolean-like strings toggle FHS mode."""
    config = load_config(
        config_file=tmp_path / "absent.yml",
        env={"INSTANCECTL_FOLLOW_FHS": raw},
    )

    assert config.follow_fhs is expected


def test_follow_fhs_rejects_garbage(tmp_path: Path) -> None:
    """Unparsable flags raise a ConfigError."""
    with pytest.raises(ConfigError, match="follow_fhs"):
        load_config(config_file=tmp_path / "absent.yml", env={"INSTANCECTL_FOLLOW_FHS": "maybe"})


@pytest.mark.parametrize("value", ["www-data", ":group", "user:", "::"])
def test_ownership_rejects_malformed_values(tmp_path: Path, value: str) -> None:
    """Ownership must be a user:group pair."""
    with pytest.raises(ConfigError, match="ownership"):
        load_config(config_file=tmp_path / "absent.yml", env={"INSTANCECTL_OWNERSHIP": value})


def test_unknown_keys_are_rejected(tmp_path: Path) -> None:
    """Typos in the config file are reported."""
    cfg = tmp_path / "instancectl.yml"
    cfg.write_text("folow_fhs: true\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="folow_fhs"):
        load_config(config_file=cfg, env={})


def test_non_mapping_file_is_rejected(tmp_path: Path) -> None:
    """The config file must hold a mapping."""
    cfg = tmp_path / "instancectl.yml"
    cfg.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="mapping"):
        load_config(config_file=cfg, env={})


def test_app_name_cannot_contain_separators(tmp_path: Path) -> None:
    """The app name is a single path component."""
    with pytest.raises(ConfigError, match="app_name"):
        load_config(config_file=tmp_path / "absent.yml", env={"INSTANCECTL_APP_NAME": "a/b"})


def test_to_dict_is_serialisable(tmp_path: Path) -> None:
    """The dictionary form contains plain strings and booleans."""
    config = load_config(
        config_file=tmp_path / "absent.yml",
        env={"INSTANCECTL_OWNERSHIP": "redmine:redmine"},
    )

    data = config.to_dict()
    assert data["ownership"] == "redmine:redmine"
    assert data["follow_fhs"] is False
    assert data["instances_root"] == "/usr/share/app/instances"


def test_numeric_ownership_in_file_stays_a_pair(tmp_path: Path) -> None:
    """``uid:gid`` values are not read as base-60 integers."""
    cfg = tmp_path / "instancectl.yml"
    cfg.write_text("ownership: 33:33\n", encoding="utf-8")

    config = load_config(config_file=cfg, env={})

    assert config.ownership == Ownership(user="33", group="33")


def test_plain_integers_still_parse(tmp_path: Path) -> None:
    """Ordinary YAML integers keep their meaning."""
    cfg = tmp_path / "instancectl.yml"
    cfg.write_text("follow_fhs: 1\napp_name: 42\n", encoding="utf-8")

    config = load_config(config_file=cfg, env={})

    assert config.follow_fhs is True
    assert config.app_name == "42"


def test_unreadable_install_root_is_config_error(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Failing to inspect the installation directory is a ConfigError."""

    def deny(cls: type[Ownership], path: Path) -> Ownership:
        raise PermissionError(13, "Permission denied", str(path))

    monkeypatch.setattr(Ownership, "from_path", classmethod(deny))

    with pytest.raises(ConfigError, match="Permission denied"):
        load_config(
            config_file=tmp_path / "absent.yml",
            env={"INSTANCECTL_INSTALL_ROOT": str(tmp_path)},
        )


def test_env_keys_are_flat(tmp_path: Path) -> None:
    """Double underscores do not nest; the result is an unknown key."""
    with pytest.raises(ConfigError, match="ownership__user"):
        load_config(
            config_file=tmp_path / "absent.yml",
            env={"INSTANCECTL_OWNERSHIP__USER": "www-data"},
        )
