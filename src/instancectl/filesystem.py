"""Planning and applying instance directory scaffolding.

Work is split into a side-effect free *plan* (what needs to happen for one
instance directory) and an *apply* step that performs it. Applying the same
plan twice converges on the same end state:

* the physical directory is created with ``mkdir -p`` semantics,
* ownership of the physical tree is reset recursively, and
* when the physical directory is relocated, the in-tree path is atomically
  replaced with a symlink pointing at it.
"""
from __future__ import annotations

import grp
import os
import pwd
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from .config import AppConfig, Ownership
from .layout import DirectoryKind, InstanceDirectory, resolve_directory

ActionKind = Literal["mkdir", "chown", "symlink"]

_TEMP_LINK_SUFFIX = ".instancectl-tmp"


class InstanceDirectoryError(OSError):
    """Raised when an instance directory cannot be brought into shape."""


@dataclass(slots=True)
class DirectoryAction:
    """Single filesystem change required for an instance directory."""

    kind: ActionKind
    path: Path
    target: Path | None = None
    owner: Ownership | None = None

    def describe(self) -> str:
        """Return a one-line, human readable summary."""
        if self.kind == "mkdir":
            return f"create directory {self.path}"
        if self.kind == "chown":
            return f"chown -R {self.owner} {self.path}"
        return f"link {self.path} -> {self.target}"


@dataclass(slots=True)
class DirectoryPlan:
    """Actions and warnings for one :class:`InstanceDirectory`."""

    directory: InstanceDirectory
    actions: list[DirectoryAction] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def changed(self) -> int:
        """Number of actions beyond the unconditional ownership reset."""
        return sum(1 for action in self.actions if action.kind != "chown")


def plan_instance_directory(
    directory: InstanceDirectory,
    ownership: Ownership,
) -> DirectoryPlan:
    """Inspect the filesystem and return the actions needed for *directory*."""
    plan = DirectoryPlan(directory=directory)
    physical = directory.physical

    if physical.is_symlink() and not physical.exists():
        plan.warnings.append(f"{physical} is a dangling symlink.")
    if not physical.is_dir():
        plan.actions.append(DirectoryAction(kind="mkdir", path=physical))
    plan.actions.append(DirectoryAction(kind="chown", path=physical, owner=ownership))

    if directory.relocated:
        logical = directory.logical
        if logical.is_symlink():
            if Path(os.readlink(logical)) != physical:
                plan.actions.append(
                    DirectoryAction(kind="symlink", path=logical, target=physical)
                )
        else:
            if logical.is_dir():
                plan.warnings.append(
                    f"{logical} is a real directory; move its contents to {physical} "
                    "and remove it so a symlink can take its place."
                )
            plan.actions.append(DirectoryAction(kind="symlink", path=logical, target=physical))
    return plan


def apply_directory_plan(plan: DirectoryPlan) -> None:
    """Apply every action in *plan*, stopping at the first failure."""
    for action in plan.actions:
        if action.kind == "mkdir":
            action.path.mkdir(parents=True, exist_ok=True)
        elif action.kind == "chown":
            if action.owner is None:  # pragma: no cover - planner always sets owner
                raise InstanceDirectoryError(f"No ownership given for {action.path}.")
            chown_tree(action.path, action.owner)
        elif action.kind == "symlink":
            if action.target is None:  # pragma: no cover - planner always sets target
                raise InstanceDirectoryError(f"No symlink target given for {action.path}.")
            replace_symlink(action.path, action.target)


def chown_tree(root: Path, ownership: Ownership) -> None:
    """Recursively apply *ownership* to *root* without following symlinks."""
    uid, gid = resolve_ids(ownership)
    os.chown(root, uid, gid)
    for dirpath, dirnames, filenames in os.walk(root, onerror=_raise_walk_error):
        for name in (*dirnames, *filenames):
            os.chown(os.path.join(dirpath, name), uid, gid, follow_symlinks=False)


def _raise_walk_error(exc: OSError) -> None:
    raise exc


def replace_symlink(link: Path, target: Path) -> None:
    """Atomically point *link* at *target*, replacing a link or file in place."""
    if link.is_dir() and not link.is_symlink():
        raise InstanceDirectoryError(
            f"Refusing to replace directory {link} with a symlink to {target}."
        )
    link.parent.mkdir(parents=True, exist_ok=True)
    temp_link = link.with_name(f".{link.name}{_TEMP_LINK_SUFFIX}")
    if temp_link.exists() or temp_link.is_symlink():
        temp_link.unlink()
    temp_link.symlink_to(target, target_is_directory=True)
    temp_link.replace(link)


def resolve_ids(ownership: Ownership) -> tuple[int, int]:
    """Translate an :class:`Ownership` into numeric ``(uid, gid)``."""
    try:
        uid = pwd.getpwnam(ownership.user).pw_uid
    except KeyError:
        if not ownership.user.isdigit():
            raise InstanceDirectoryError(f"Unknown user '{ownership.user}'.") from None
        uid = int(ownership.user)
    try:
        gid = grp.getgrnam(ownership.group).gr_gid
    except KeyError:
        if not ownership.group.isdigit():
            raise InstanceDirectoryError(f"Unknown group '{ownership.group}'.") from None
        gid = int(ownership.group)
    return uid, gid


@dataclass(slots=True)
class InstanceDirectoryManager:
    """Bring instance directories into their configured shape."""

    instances_root: Path
    ownership: Ownership
    follow_fhs: bool = False
    app_name: str = "app"
    fhs_prefix: Path = Path("/")

    @classmethod
    def from_config(cls, config: AppConfig) -> InstanceDirectoryManager:
        """Build a manager from resolved configuration."""
        return cls(
            instances_root=config.instances_root,
            ownership=config.require_ownership(),
            follow_fhs=config.follow_fhs,
            app_name=config.app_name,
            fhs_prefix=config.fhs_prefix,
        )

    def directory(self, instance: str, kind: DirectoryKind) -> InstanceDirectory:
        """Return the logical/physical location of *kind* for *instance*."""
        return resolve_directory(
            self.instances_root,
            instance,
            kind,
            follow_fhs=self.follow_fhs,
            app_name=self.app_name,
            fhs_prefix=self.fhs_prefix,
        )

    def plan(self, instance: str, kind: DirectoryKind) -> DirectoryPlan:
        """Return the plan for *kind* of *instance* without applying it."""
        return plan_instance_directory(self.directory(instance, kind), self.ownership)

    def ensure_directory(self, instance: str, kind: DirectoryKind) -> DirectoryPlan:
        """Create, chown and link *kind* of *instance*; return the applied plan."""
        plan = self.plan(instance, kind)
        apply_directory_plan(plan)
        return plan


__all__ = [
    "DirectoryAction",
    "DirectoryPlan",
    "InstanceDirectoryError",
    "InstanceDirectoryManager",
    "apply_directory_plan",
    "chown_tree",
    "plan_instance_directory",
    "replace_symlink",
    "resolve_ids",
]
