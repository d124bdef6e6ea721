"""Instance level operations: enumerate, create and remove."""
from __future__ import annotations

import os
import shutil
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from pathlib import Path

from .filesystem import DirectoryPlan, InstanceDirectoryManager
from .layout import DirectoryKind

ConfirmPrompt = Callable[[str], bool]


@dataclass(slots=True)
class RemovalResult:
    """Outcome of :func:`remove_instance`."""

    name: str
    root: Path
    removed: bool = False
    missing: bool = False
    declined: bool = False


def iter_instances(instances_root: Path) -> Iterator[str]:
    """Yield instance names under *instances_root* in native directory order."""
    try:
        entries = os.scandir(instances_root)
    except FileNotFoundError:
        return
    with entries:
        for entry in entries:
            if entry.is_dir():
                yield entry.name


def create_instance(manager: InstanceDirectoryManager, name: str) -> list[DirectoryPlan]:
    """Ensure every directory kind exists for *name*.

    Kinds are processed in declaration order. The first failure propagates and
    directories created before it are left in place.
    """
    return [manager.ensure_directory(name, kind) for kind in DirectoryKind]


def plan_instance(manager: InstanceDirectoryManager, name: str) -> list[DirectoryPlan]:
    """Return the plans :func:`create_instance` would apply, without applying them."""
    return [manager.plan(name, kind) for kind in DirectoryKind]


def is_affirmative(answer: str | None) -> bool:
    """Return True for ``y``/``Y`` answers."""
    return (answer or "").strip() in {"y", "Y"}


def remove_instance(instances_root: Path, name: str, confirm: ConfirmPrompt) -> RemovalResult:
    """Remove the in-tree directory of *name* once *confirm* agrees.

    Only ``<instances_root>/<name>`` is deleted. Directories relocated to FHS
    locations are left for the operator to clean up.
    """
    root = instances_root / name
    result = RemovalResult(name=name, root=root)
    if not root.exists() and not root.is_symlink():
        result.missing = True
        return result

    if not confirm(f"Remove instance '{name}' and all of its data? [y/N]"):
        result.declined = True
        return result

    if root.is_symlink() or not root.is_dir():
        root.unlink()
    else:
        shutil.rmtree(root)
    result.removed = True
    return result


__all__ = [
    "ConfirmPrompt",
    "RemovalResult",
    "create_instance",
    "is_affirmative",
    "iter_instances",
    "plan_instance",
    "remove_instance",
]
