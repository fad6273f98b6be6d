"""Workspace member discovery."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping
import os
import tomllib

from .core.config_loader import normalize_string_list

from .errors import ConfigurationError

MANIFEST_NAME = "Cargo.toml"

# Directories that never contain workspace members.
_SKIPPED_DIRECTORIES = {"target", "dist", "node_modules"}


@dataclass(frozen=True, slots=True)
class WorkspaceMember:
    name: str
    root: Path
    path: Path

    @property
    def manifest(self) -> Path:
        return self.root / MANIFEST_NAME


def read_manifest(path: Path) -> Dict[str, Any]:
    """Parse a ``Cargo.toml`` file, reporting syntax errors with the file name."""

    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except (tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
        raise ConfigurationError(f"Invalid manifest '{path}': {exc}") from exc
    except OSError as exc:
        raise ConfigurationError(f"Could not read manifest '{path}': {exc}") from exc


def _package_name(manifest: Mapping[str, Any]) -> str | None:
    package = manifest.get("package")
    if isinstance(package, Mapping):
        name = package.get("name")
        if isinstance(name, str) and name.strip():
            return name.strip()
    return None


def _member_from_directory(root: Path, directory: Path) -> WorkspaceMember:
    name: str | None = None
    manifest_path = directory / MANIFEST_NAME
    if manifest_path.is_file():
        name = _package_name(read_manifest(manifest_path))
    try:
        relative = directory.relative_to(root)
    except ValueError:
        relative = directory
    return WorkspaceMember(name=name or directory.name, root=directory, path=relative)


def _declared_members(root: Path, entries: Iterable[str]) -> Dict[str, WorkspaceMember]:
    members: Dict[str, WorkspaceMember] = {}
    for entry in entries:
        directory = Path(entry)
        if not directory.is_absolute():
            directory = root / directory
        if directory.is_dir():
            member = _member_from_directory(root, directory)
        else:
            # bare package name
            member = WorkspaceMember(name=Path(entry).name, root=directory, path=Path(entry))
        members.setdefault(member.name, member)
    return members


def scan_members(root: Path) -> Dict[str, WorkspaceMember]:
    """Find crate manifests below ``root``, excluding the root manifest.

    The walk does not descend into a member's own subdirectories, so manifests
    nested inside a crate (generated examples, fixtures) are not mistaken for
    workspace members.
    """

    members: Dict[str, WorkspaceMember] = {}
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(
            name for name in dirnames if not name.startswith(".") and name not in _SKIPPED_DIRECTORIES
        )
        directory = Path(dirpath)
        if directory == root or MANIFEST_NAME not in filenames:
            continue
        manifest = read_manifest(directory / MANIFEST_NAME)
        if _package_name(manifest) is None and "workspace" in manifest:
            # nested virtual workspace; its members belong to it
            dirnames[:] = []
            continue
        member = _member_from_directory(root, directory)
        members.setdefault(member.name, member)
        dirnames[:] = []
    return members


def resolve_members(root: Path, declared: Iterable[str] = ()) -> frozenset[WorkspaceMember]:
    """Return the workspace members of the project at ``root``.

    A declared member list wins; the filesystem scan is only a fallback. Both
    coming up empty is a configuration error rather than an empty matrix.
    """

    entries = [
        entry
        for item in declared
        for entry in normalize_string_list(item, field_name="workspace members")
    ]
    members = _declared_members(root, entries) if entries else {}
    if not members:
        members = scan_members(root)
    if not members:
        raise ConfigurationError(
            f"No workspace members found under '{root}'. "
            "Declare them with WORKSPACE_MEMBERS or add member crates with their own Cargo.toml."
        )
    return frozenset(members.values())


def find_member(members: Iterable[WorkspaceMember], name: str) -> WorkspaceMember:
    candidates = sorted(members, key=lambda member: member.name)
    for member in candidates:
        if member.name == name or member.path.as_posix() == name:
            return member
    available = ", ".join(member.name for member in candidates) or "<none>"
    raise ConfigurationError(f"Unknown workspace member '{name}'. Available members: {available}")


__all__ = [
    "MANIFEST_NAME",
    "WorkspaceMember",
    "find_member",
    "read_manifest",
    "resolve_members",
    "scan_members",
]
