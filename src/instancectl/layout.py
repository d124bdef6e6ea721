"""Logical and physical locations of instance directories."""
from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path


class DirectoryKind(StrEnum):
    """The four directories every instance owns, in creation order."""

    CONFIG = "config"
    LOG = "log"
    FILES = "files"
    TMP = "tmp"


# Relative to the FHS prefix; ``{app}`` and ``{instance}`` are substituted.
FHS_LAYOUT: dict[DirectoryKind, str] = {
    DirectoryKind.CONFIG: "etc/{app}/{instance}",
    DirectoryKind.LOG: "var/log/{app}/{instance}",
    DirectoryKind.FILES: "var/lib/{app}/{instance}/files",
    DirectoryKind.TMP: "var/cache/{app}/{instance}",
}


@dataclass(frozen=True, slots=True)
class InstanceDirectory:
    """Where a single instance directory lives in-tree and on disk."""

    instance: str
    kind: DirectoryKind
    logical: Path
    physical: Path

    @property
    def relocated(self) -> bool:
        """Return True when the in-tree entry must be a symlink."""
        return self.physical != self.logical


def validate_instance_name(name: str | None) -> str:
    """Return *name* unchanged, rejecting missing or blank values."""
    if not name or not name.strip():
        raise ValueError("Instance name must be a non-empty string.")
    return name


def fhs_path(kind: DirectoryKind, instance: str, *, app_name: str, prefix: Path) -> Path:
    """Return the FHS location for *kind* of *instance*."""
    return prefix / FHS_LAYOUT[kind].format(app=app_name, instance=instance)


def resolve_directory(
    instances_root: Path,
    instance: str,
    kind: DirectoryKind,
    *,
    follow_fhs: bool = False,
    app_name: str = "app",
    fhs_prefix: Path = Path("/"),
) -> InstanceDirectory:
    """Compute the logical and physical paths for *kind* of *instance*."""
    logical = instances_root / instance / kind.value
    physical = (
        fhs_path(kind, instance, app_name=app_name, prefix=fhs_prefix) if follow_fhs else logical
    )
    return InstanceDirectory(instance=instance, kind=kind, logical=logical, physical=physical)


__all__ = [
    "FHS_LAYOUT",
    "DirectoryKind",
    "InstanceDirectory",
    "fhs_path",
    "resolve_directory",
    "validate_instance_name",
]
