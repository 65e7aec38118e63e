"""Command line entry point.

    ovirtagent test-connection lab
    ovirtagent vms lab
    ovirtagent snapshots lab builder01
    ovirtagent launch builder01
"""

from __future__ import annotations

import argparse
import shutil
import sys
import threading
from pathlib import Path
from typing import BinaryIO

from loguru import logger

from ovirtagent.bootstrap import AgentSession, session_outcome
from ovirtagent.config import GLOBAL_CONFIG_PATH, RawConfig, build_hypervisor, load_config
from ovirtagent.core.exceptions import OVirtAgentError
from ovirtagent.logging import LogConfig, TaskLog, setup_logging, teardown_logging
from ovirtagent.providers.ovirt import OVirtHypervisor
from ovirtagent.runtime import AgentRuntime

log = logger.bind(component="cli")


class ConsoleComputer:
    """Pumps the agent's stdout to this process' stdout once the channel is set."""

    def __init__(self, name: str, out: BinaryIO) -> None:
        self._name = name
        self._out = out
        self.stdin: BinaryIO | None = None
        self._pump: threading.Thread | None = None

    @property
    def name(self) -> str:
        return self._name

    def set_channel(self, stdout: BinaryIO, stdin: BinaryIO, log: TaskLog) -> None:
        self.stdin = stdin
        self._pump = threading.Thread(
            target=shutil.copyfileobj, args=(stdout, self._out), daemon=True, name=f"stdout {self._name}"
        )
        self._pump.start()
        log.println("Agent channel attached to console")

    def join(self, timeout: float | None = None) -> None:
        if self._pump is not None:
            self._pump.join(timeout)


def _hypervisor(config: RawConfig, name: str) -> OVirtHypervisor:
    hypervisors = config["hypervisors"]
    if name not in hypervisors:
        raise KeyError(f"Hypervisor '{name}' not found. Available: {', '.join(hypervisors) or 'none'}")
    return build_hypervisor(name, hypervisors[name])


def cmd_test_connection(config: RawConfig, args: argparse.Namespace) -> int:
    ok, message = _hypervisor(config, args.hypervisor).test_connection()
    print(message)
    return 0 if ok else 1


def cmd_vms(config: RawConfig, args: argparse.Namespace) -> int:
    hypervisor = _hypervisor(config, args.hypervisor)
    try:
        for name in sorted(hypervisor.vm_names()):
            print(name)
    finally:
        hypervisor.close()
    return 0


def cmd_snapshots(config: RawConfig, args: argparse.Namespace) -> int:
    hypervisor = _hypervisor(config, args.hypervisor)
    try:
        for name in hypervisor.snapshot_names(args.vm):
            print(name)
    finally:
        hypervisor.close()
    return 0


def cmd_launch(config: RawConfig, args: argparse.Namespace) -> int:
    computer = ConsoleComputer(args.agent, sys.stdout.buffer)
    task_log = TaskLog(args.agent, sys.stderr)

    with AgentRuntime.from_config(config, base_dir=args.config_dir) as runtime:
        launcher = runtime.launcher(args.agent)
        session: AgentSession | None = None
        try:
            session = launcher.launch(computer, task_log)
            code = session.wait()
        except KeyboardInterrupt:
            task_log.println("Interrupted - cancelling launch")
            launcher.cancel()
            if session is not None:
                session.close()
            return 130

        computer.join(timeout=5.0)
        message, _ = session_outcome(session.channel)
        task_log.println(message)
        session.close()
    return code


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ovirtagent", description="Launch build agents on oVirt VMs")
    parser.add_argument(
        "--config-dir", type=Path, default=Path.cwd(), help="Directory holding ovirtagent.toml"
    )
    parser.add_argument("--global-config", type=Path, default=GLOBAL_CONFIG_PATH)
    parser.add_argument("--log-level", default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--log-file", default=None)

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("test-connection", help="Check the engine accepts the configured credentials")
    p.add_argument("hypervisor")
    p.set_defaults(handler=cmd_test_connection)

    p = sub.add_parser("vms", help="List VMs in the hypervisor's cluster")
    p.add_argument("hypervisor")
    p.set_defaults(handler=cmd_vms)

    p = sub.add_parser("snapshots", help="List snapshot descriptions of a VM")
    p.add_argument("hypervisor")
    p.add_argument("vm")
    p.set_defaults(handler=cmd_snapshots)

    p = sub.add_parser("launch", help="Bring an agent's VM up and start the agent on it")
    p.add_argument("agent")
    p.set_defaults(handler=cmd_launch)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    handlers = setup_logging(LogConfig(level=args.log_level, file=args.log_file))
    try:
        config = load_config(project_dir=args.config_dir, global_path=args.global_config)
        return args.handler(config, args)
    except (OVirtAgentError, KeyError) as e:
        log.debug("Command {cmd} failed: {err!r}", cmd=args.command, err=e)
        message = e.args[0] if isinstance(e, KeyError) and e.args else e
        print(f"error: {message}", file=sys.stderr)
        return 1
    finally:
        teardown_logging(handlers)
