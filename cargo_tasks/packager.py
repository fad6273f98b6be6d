"""Copy built binaries into the ``dist/<target>/`` layout."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, List, Mapping
import os
import shutil
import tempfile

from .core.console import Console
from .workspace import WorkspaceMember, read_manifest


@dataclass(frozen=True, slots=True)
class DistributionArtifact:
    source: Path
    destination: Path


class PackageStatus(str, Enum):
    PACKAGED = "packaged"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(slots=True)
class PackageResult:
    """Outcome of packaging one member for one target."""

    member: WorkspaceMember
    target: str
    status: PackageStatus
    artifacts: List[DistributionArtifact] = field(default_factory=list)
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is not PackageStatus.FAILED


def binary_names(member: WorkspaceMember) -> List[str]:
    """Names of the binary targets declared or implied by ``member``'s manifest."""

    manifest: Mapping[str, Any] = read_manifest(member.manifest) if member.manifest.is_file() else {}
    package = manifest.get("package", {})
    package_name = package.get("name", member.name) if isinstance(package, Mapping) else member.name
    autobins = package.get("autobins", True) if isinstance(package, Mapping) else True

    names: List[str] = []

    def add(name: str) -> None:
        if name and name not in names:
            names.append(name)

    for entry in manifest.get("bin", []) or []:
        if isinstance(entry, Mapping) and entry.get("name"):
            add(str(entry["name"]))

    if autobins:
        src = member.root / "src"
        if (src / "main.rs").is_file():
            add(str(package_name))
        bin_dir = src / "bin"
        if bin_dir.is_dir():
            for path in sorted(bin_dir.iterdir()):
                if path.is_file() and path.suffix == ".rs":
                    add(path.stem)
                elif path.is_dir() and (path / "main.rs").is_file():
                    add(path.name)
    return names


class ArtifactPackager:
    """Collects binaries from cargo's output directory into ``dist_dir``.

    Packaging is idempotent: an existing artifact is overwritten. Only one
    writer may populate a given ``dist/<target>`` directory at a time.
    """

    def __init__(
        self,
        *,
        members: Iterable[WorkspaceMember],
        host_triple: str,
        target_dir: Path,
        dist_dir: Path,
        release: bool = False,
        dry_run: bool = False,
        console: Console | None = None,
    ) -> None:
        self._members = sorted(members, key=lambda member: member.name)
        self._host_triple = host_triple
        self._target_dir = target_dir
        self._dist_dir = dist_dir
        self._release = release
        self._dry_run = dry_run
        self._console = console or Console("none")

    def output_directory(self, target: str) -> Path:
        profile = "release" if self._release else "debug"
        if target == self._host_triple:
            return self._target_dir / profile
        return self._target_dir / target / profile

    @staticmethod
    def executable_name(name: str, target: str) -> str:
        return f"{name}.exe" if "windows" in target else name

    def package(self, target: str, member: WorkspaceMember | None = None) -> List[DistributionArtifact]:
        artifacts: List[DistributionArtifact] = []
        for result in self.package_results(target, member):
            artifacts.extend(result.artifacts)
        return artifacts

    def package_results(self, target: str, member: WorkspaceMember | None = None) -> List[PackageResult]:
        members = [member] if member is not None else self._members
        return [self.package_member(target, candidate) for candidate in members]

    def package_member(self, target: str, member: WorkspaceMember) -> PackageResult:
        """Package one member for ``target``.

        Missing binaries and library-only members are skips. A failed copy stops
        the member and is reported as :attr:`PackageStatus.FAILED`; the previous
        artifact, if any, is left untouched.
        """

        names = binary_names(member)
        if not names:
            self._console.info(f"Member '{member.name}' has no binary targets; nothing to package for {target}")
            return PackageResult(member=member, target=target, status=PackageStatus.SKIPPED, reason="no binary targets")

        source_dir = self.output_directory(target)
        destination_dir = self._dist_dir / target
        result = PackageResult(member=member, target=target, status=PackageStatus.SKIPPED)
        missing: List[str] = []
        for name in names:
            filename = self.executable_name(name, target)
            artifact = DistributionArtifact(source=source_dir / filename, destination=destination_dir / filename)
            if self._dry_run:
                self._console.dry(f"copy {artifact.source} -> {artifact.destination}")
                result.artifacts.append(artifact)
                continue
            if not artifact.source.is_file():
                self._console.info(
                    f"Binary '{filename}' of member '{member.name}' not found in {source_dir}; skipping for {target}"
                )
                missing.append(filename)
                continue
            try:
                self._install(artifact.source, artifact.destination)
            except OSError as exc:
                self._console.error(f"Could not package {member.name}/{filename} for {target}: {exc}")
                result.status = PackageStatus.FAILED
                result.reason = f"could not copy {filename}: {exc}"
                return result
            self._console.info(f"Packaged {member.name}/{filename} for {target} -> {artifact.destination}")
            result.artifacts.append(artifact)

        if result.artifacts:
            result.status = PackageStatus.PACKAGED
        if missing:
            result.reason = f"not found in {source_dir}: {', '.join(missing)}"
        elif self._dry_run:
            result.reason = "dry-run"
        return result

    @staticmethod
    def _install(source: Path, destination: Path) -> None:
        # dist/ never holds a partial binary
        destination.parent.mkdir(parents=True, exist_ok=True)
        handle, temporary = tempfile.mkstemp(dir=destination.parent, prefix=f".{destination.name}.", suffix=".tmp")
        os.close(handle)
        try:
            shutil.copy2(source, temporary)
            os.replace(temporary, destination)
        except BaseException:
            Path(temporary).unlink(missing_ok=True)
            raise


__all__ = [
    "ArtifactPackager",
    "DistributionArtifact",
    "PackageResult",
    "PackageStatus",
    "binary_names",
]
