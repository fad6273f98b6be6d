"""Orchestrator configuration assembled once at start-up.

Values are layered: an optional ``cargo-tasks`` config file, then the process
environment, then command line overrides. The result is an immutable
:class:`OrchestratorConfig` that every component receives explicitly.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Tuple
import os

import yaml

from .core.command_runner import CommandRunner
from .core.config_loader import find_config_file, load_config_file, normalize_string_list, parse_flag

from .errors import ConfigurationError
from .matrix import query_host_triple
from .runners import is_runner_variable, runner_variable

CONFIG_STEM = "cargo-tasks"
CONFIG_PATH_VARIABLE = "CARGO_TASKS_CONFIG"

# Environment variable -> config key. First variable present wins.
_ENVIRONMENT_KEYS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("targets", ("TARGETS",)),
    ("release", ("RELEASE",)),
    ("strict", ("STRICT",)),
    ("features", ("FEATURES",)),
    ("all_features", ("ALL_FEATURES",)),
    ("member", ("MEMBER",)),
    ("members", ("WORKSPACE_MEMBERS", "CARGO_MAKE_CRATE_WORKSPACE_MEMBERS")),
    ("keep_going", ("KEEP_GOING",)),
    ("target_dir", ("CARGO_TARGET_DIR",)),
    ("host", ("HOST_TRIPLE",)),
)

_ALLOWED_KEYS = {key for key, _ in _ENVIRONMENT_KEYS} | {"dist_dir"}


@dataclass(frozen=True, slots=True)
class OrchestratorConfig:
    root: Path
    host_triple: str
    targets: Tuple[str, ...] = ()
    release: bool = False
    strict: bool = False
    features: Tuple[str, ...] = ()
    all_features: bool = False
    member: str | None = None
    declared_members: Tuple[str, ...] = ()
    keep_going: bool = False
    dist_dir: Path | None = None
    target_dir: Path | None = None
    runners: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def target_spec(self) -> str:
        return " ".join(self.targets)

    @property
    def resolved_dist_dir(self) -> Path:
        return self.dist_dir or self.root / "dist"

    @property
    def resolved_target_dir(self) -> Path:
        return self.target_dir or self.root / "target"


def _file_settings(path: Path) -> Tuple[Dict[str, Any], Dict[str, str]]:
    try:
        data = load_config_file(path)
    except (OSError, TypeError, ValueError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Could not load configuration file '{path}': {exc}") from exc

    tasks = data.get("tasks", {})
    if not isinstance(tasks, Mapping):
        raise ConfigurationError(f"'{path}': [tasks] must be a table")
    unknown = {str(key) for key in tasks} - _ALLOWED_KEYS
    if unknown:
        raise ConfigurationError(f"'{path}': unknown [tasks] keys: {', '.join(sorted(unknown))}")

    runners_section = data.get("runners", {})
    if not isinstance(runners_section, Mapping):
        raise ConfigurationError(f"'{path}': [runners] must be a table of target = command")
    runners = {runner_variable(str(target)): str(command) for target, command in runners_section.items()}
    return dict(tasks), runners


def _locate_config_file(root: Path, env: Mapping[str, str], config_path: Path | None) -> Path | None:
    if config_path is not None:
        return config_path if config_path.is_absolute() else root / config_path
    from_env = env.get(CONFIG_PATH_VARIABLE)
    if from_env:
        path = Path(from_env)
        return path if path.is_absolute() else root / path
    try:
        return find_config_file(root, CONFIG_STEM)
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc


def _string_list(settings: Mapping[str, Any], key: str) -> Tuple[str, ...]:
    try:
        return tuple(normalize_string_list(settings.get(key), field_name=key))
    except TypeError as exc:
        raise ConfigurationError(f"Invalid '{key}' setting: {exc}") from exc


def _optional_path(root: Path, value: Any) -> Path | None:
    if value in (None, ""):
        return None
    path = Path(str(value)).expanduser()
    return path if path.is_absolute() else root / path


def load_config(
    *,
    root: Path,
    env: Mapping[str, str] | None = None,
    config_path: Path | None = None,
    overrides: Mapping[str, Any] | None = None,
    host_probe: Callable[[], str] | None = None,
    probe_runner: CommandRunner | None = None,
) -> OrchestratorConfig:
    """Build the configuration for one orchestration run.

    ``overrides`` holds command line values; ``None`` entries are ignored so
    unset flags fall through to the environment and config file.
    """

    env = dict(os.environ if env is None else env)
    root = root.resolve()

    settings: Dict[str, Any] = {}
    runners: Dict[str, str] = {}
    path = _locate_config_file(root, env, config_path)
    if path is not None:
        if not path.is_file():
            raise ConfigurationError(f"Configuration file '{path}' does not exist")
        settings, runners = _file_settings(path)

    for key, variables in _ENVIRONMENT_KEYS:
        for variable in variables:
            if variable in env:
                value: Any = env[variable]
                # ALL_FEATURES is a presence flag, whatever its value
                if key == "all_features":
                    value = True
                settings[key] = value
                break

    for name, value in env.items():
        if is_runner_variable(name):
            runners[name] = value

    for key, value in (overrides or {}).items():
        if value is not None:
            settings[key] = value

    features = _string_list(settings, "features")
    all_features = parse_flag(settings.get("all_features"))
    if features and all_features:
        raise ConfigurationError(
            "FEATURES and ALL_FEATURES are mutually exclusive; request an explicit feature list or all features, not both"
        )

    host = str(settings.get("host") or "").strip()
    if not host:
        host = host_probe() if host_probe is not None else query_host_triple(probe_runner)

    member = str(settings.get("member") or "").strip() or None

    return OrchestratorConfig(
        root=root,
        host_triple=host,
        targets=_string_list(settings, "targets"),
        release=parse_flag(settings.get("release")),
        strict=parse_flag(settings.get("strict")),
        features=features,
        all_features=all_features,
        member=member,
        declared_members=_string_list(settings, "members"),
        keep_going=parse_flag(settings.get("keep_going")),
        dist_dir=_optional_path(root, settings.get("dist_dir")),
        target_dir=_optional_path(root, settings.get("target_dir")),
        runners=MappingProxyType(dict(runners)),
    )


__all__ = ["CONFIG_PATH_VARIABLE", "CONFIG_STEM", "OrchestratorConfig", "load_config"]
