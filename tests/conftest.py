"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from instancectl.config import Ownership


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip expensive tests during mutation runs."""
    if not os.environ.get("MUTANT_UNDER_TEST"):
        return
    skip_marker = pytest.mark.skip(reason="Skipped during mutation run to avoid timeouts.")
    for item in items:
        if "mutation_timeout" in item.keywords:
            item.add_marker(skip_marker)


@pytest.fixture
def ownership(tmp_path: Path) -> Ownership:
    """Return the owner of the temporary directory (the current user)."""
    return Ownership.from_path(tmp_path)


@pytest.fixture
def cli_env(tmp_path: Path, ownership: Ownership) -> dict[str, str]:
    """Environment that points every instancectl path into *tmp_path*."""
    install_root = tmp_path / "share"
    install_root.mkdir()
    return {
        "INSTANCECTL_CONFIG_FILE": str(tmp_path / "missing-config.yml"),
        "INSTANCECTL_INSTALL_ROOT": str(install_root),
        "INSTANCECTL_INSTANCES_ROOT": str(tmp_path / "instances"),
        "INSTANCECTL_FHS_PREFIX": str(tmp_path / "fhs"),
        "INSTANCECTL_LOGS_DIR": str(tmp_path / "logs"),
        "INSTANCECTL_OWNERSHIP": str(ownership),
        "INSTANCECTL_FOLLOW_FHS": "no",
    }
