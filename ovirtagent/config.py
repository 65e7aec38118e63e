"""TOML-based hypervisor and agent configuration.

Loads ~/.ovirtagent/defaults.toml (global) and ovirtagent.toml (project),
merges them, and builds hypervisor endpoints and agent launch specs:

    [hypervisors.lab]
    url = "https://engine.example.com/ovirt-engine/api"
    username = "admin@internal"
    password = "secret"
    cluster = "Default"

    [agents.builder01]
    hypervisor = "lab"
    vm = "builder01"
    snapshot = "clean"

    [agents.builder01.ssh]
    username = "jenkins"
    password = "secret"
    jar_path = "agent.jar"
"""

from __future__ import annotations

import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ovirtagent.core.exceptions import ConfigurationError
from ovirtagent.spec import NAME_PATTERN, AgentLaunchSpec, SSHSettings, check_name

if TYPE_CHECKING:
    from ovirtagent.providers.ovirt import ConnectionFactory, OVirtHypervisor

type RawConfig = dict[str, Any]

GLOBAL_CONFIG_PATH = Path.home() / ".ovirtagent" / "defaults.toml"
PROJECT_CONFIG_NAME = "ovirtagent.toml"

_HYPERVISOR_REQUIRED = ("url", "username", "password")
_HYPERVISOR_FIELDS = {"url", "username", "password", "cluster", "ca_file"}


def _deep_merge(base: RawConfig, override: RawConfig) -> RawConfig:
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_toml(path: Path) -> RawConfig:
    if not path.is_file():
        return {}
    with path.open("rb") as f:
        try:
            return tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid TOML in {path}: {e}") from e


def load_config(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> RawConfig:
    global_cfg = _read_toml(global_path or GLOBAL_CONFIG_PATH)
    project_path = (project_dir or Path.cwd()) / PROJECT_CONFIG_NAME
    project_cfg = _read_toml(project_path)

    merged = _deep_merge(global_cfg, project_cfg)
    merged.setdefault("hypervisors", {})
    merged.setdefault("agents", {})
    return merged


def hypervisor_description(name: str, raw: Mapping[str, Any]) -> str:
    url = raw.get("url")
    if not url:
        raise ConfigurationError(f"Hypervisor '{name}' missing 'url' field")
    return f"{name.strip()} {str(url).strip()}"


def build_hypervisor(
    name: str,
    raw: Mapping[str, Any],
    *,
    connect: ConnectionFactory | None = None,
) -> OVirtHypervisor:
    from ovirtagent.providers.ovirt import OVirtHypervisor

    if not check_name(name).ok:
        raise ConfigurationError(f"Hypervisor name '{name}' allows only: {NAME_PATTERN}")
    for key in _HYPERVISOR_REQUIRED:
        if key not in raw:
            raise ConfigurationError(f"Hypervisor '{name}' missing '{key}' field")
    unknown = set(raw) - _HYPERVISOR_FIELDS
    if unknown:
        raise ConfigurationError(
            f"Hypervisor '{name}' has unknown fields: {', '.join(sorted(unknown))}"
        )

    kwargs: dict[str, Any] = {k: str(v) for k, v in raw.items()}
    if connect is not None:
        kwargs["connect"] = connect
    return OVirtHypervisor(name=name, **kwargs)


def _build_ssh(agent: str, raw: Mapping[str, Any] | None) -> SSHSettings:
    if not raw:
        raise ConfigurationError(f"Agent '{agent}' missing [ssh] section")
    try:
        return SSHSettings(**raw)
    except TypeError as e:
        raise ConfigurationError(f"Agent '{agent}' has invalid ssh settings: {e}") from e


def build_agent(name: str, raw: Mapping[str, Any], hypervisors: Mapping[str, Any]) -> AgentLaunchSpec:
    raw = dict(raw)
    hypervisor_ref = raw.pop("hypervisor", None)
    if hypervisor_ref is None:
        raise ConfigurationError(f"Agent '{name}' missing 'hypervisor' field")
    if hypervisor_ref not in hypervisors:
        raise KeyError(
            f"Hypervisor '{hypervisor_ref}' not found. "
            f"Available: {', '.join(hypervisors) or 'none'}"
        )

    ssh = _build_ssh(name, raw.pop("ssh", None))
    try:
        return AgentLaunchSpec(
            name=name,
            hypervisor=hypervisor_description(hypervisor_ref, hypervisors[hypervisor_ref]),
            ssh=ssh,
            **raw,
        )
    except TypeError as e:
        raise ConfigurationError(f"Agent '{name}' has invalid settings: {e}") from e


def resolve_agent(
    name: str,
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> AgentLaunchSpec:
    config = load_config(project_dir=project_dir, global_path=global_path)
    agents = config["agents"]
    if name not in agents:
        raise KeyError(f"Agent '{name}' not found. Available: {', '.join(agents) or 'none'}")
    return build_agent(name, agents[name], config["hypervisors"])


def load_payload(settings: SSHSettings, base_dir: Path | None = None) -> bytes:
    """Read the local agent jar named by ``settings.jar_path``."""
    if not settings.jar_path:
        raise ConfigurationError("No local agent jar configured (ssh.jar_path)")
    path = Path(settings.jar_path).expanduser()
    if not path.is_absolute():
        path = (base_dir or Path.cwd()) / path
    try:
        return path.read_bytes()
    except OSError as e:
        raise ConfigurationError(f"Cannot read agent jar {path}: {e}") from e
