"""YAML configuration loader for the service watcher agent."""

from __future__ import annotations

import argparse
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import yaml

from svcwatch.classifier import ConfigurationError, ProviderPolicy, get_policy

DEFAULT_LISTEN_ADDRESS = ":8080"


@dataclass(frozen=True)
class SlackConfig:
    token: str = ""
    channel: str = ""

    @property
    def enabled(self) -> bool:
        return bool(self.token and self.channel)


@dataclass(frozen=True)
class MirrorConfig:
    watch_timeout: int = 300
    backoff_initial: float = 1.0
    backoff_max: float = 30.0
    min_watch_duration: float = 5.0


@dataclass(frozen=True)
class WorkerConfig:
    retry_base: float = 1.0
    retry_max: float = 60.0


@dataclass(frozen=True)
class AgentConfig:
    provider: str = "aws"
    terminate: bool = False
    listen_address: str = DEFAULT_LISTEN_ADDRESS
    kubeconfig: Optional[Path] = None
    providers: Mapping[str, ProviderPolicy] = field(default_factory=dict)
    slack: SlackConfig = field(default_factory=SlackConfig)
    mirror: MirrorConfig = field(default_factory=MirrorConfig)
    worker: WorkerConfig = field(default_factory=WorkerConfig)

    def policy(self) -> ProviderPolicy:
        """Resolve the configured provider; unknown names are fatal."""

        return get_policy(self.provider, self.providers)


def _section(data: dict, name: str) -> dict:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"'{name}' section must be a mapping")
    return section


def _parse_providers(section: dict) -> Dict[str, ProviderPolicy]:
    providers: Dict[str, ProviderPolicy] = {}
    for name, entry in section.items():
        if not isinstance(entry, dict):
            raise ConfigurationError(f"provider '{name}' must be a mapping")
        try:
            providers[str(name)] = ProviderPolicy(
                name=str(name),
                annotation=str(entry["annotation"]),
                value=str(entry["value"]),
            )
        except KeyError as exc:
            raise ConfigurationError(
                f"provider '{name}' missing {exc.args[0]!r}"
            ) from None
    return providers


def _parse_mirror(section: dict) -> MirrorConfig:
    return MirrorConfig(
        watch_timeout=int(section.get("watch_timeout", 300)),
        backoff_initial=float(section.get("backoff_initial", 1.0)),
        backoff_max=float(section.get("backoff_max", 30.0)),
        min_watch_duration=float(section.get("min_watch_duration", 5.0)),
    )


def _parse_worker(section: dict) -> WorkerConfig:
    return WorkerConfig(
        retry_base=float(section.get("retry_base", 1.0)),
        retry_max=float(section.get("retry_max", 60.0)),
    )


def load_config(path: Path) -> AgentConfig:
    try:
        data = yaml.safe_load(Path(path).read_text())
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"failed to parse {path}: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError("Agent configuration must be a mapping")

    slack = _section(data, "slack")
    kubeconfig = data.get("kubeconfig")

    try:
        return AgentConfig(
            provider=str(data.get("provider", "aws")),
            terminate=bool(data.get("terminate", False)),
            listen_address=str(data.get("listen_address", DEFAULT_LISTEN_ADDRESS)),
            kubeconfig=Path(kubeconfig) if kubeconfig else None,
            providers=_parse_providers(_section(data, "providers")),
            slack=SlackConfig(
                token=str(slack.get("token", "")),
                channel=str(slack.get("channel", "")),
            ),
            mirror=_parse_mirror(_section(data, "mirror")),
            worker=_parse_worker(_section(data, "worker")),
        )
    except ConfigurationError:
        raise
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"invalid configuration in {path}: {exc}") from exc


def apply_overrides(config: AgentConfig, args: argparse.Namespace) -> AgentConfig:
    """Return ``config`` with every flag the user actually passed applied."""

    changes: dict = {}
    if getattr(args, "provider", None) is not None:
        changes["provider"] = args.provider
    if getattr(args, "terminate", None) is not None:
        changes["terminate"] = bool(args.terminate)
    if getattr(args, "listen_address", None) is not None:
        changes["listen_address"] = args.listen_address
    if getattr(args, "kubeconfig", None):
        changes["kubeconfig"] = Path(args.kubeconfig)

    slack_changes: dict = {}
    if getattr(args, "slack_token", None) is not None:
        slack_changes["token"] = args.slack_token
    if getattr(args, "slack_channel", None) is not None:
        slack_changes["channel"] = args.slack_channel
    if slack_changes:
        changes["slack"] = replace(config.slack, **slack_changes)

    return replace(config, **changes)


def parse_listen_address(address: str) -> Tuple[str, int]:
    """Split ``host:port``; an empty host listens on every interface."""

    host, sep, port = address.rpartition(":")
    if not sep:
        raise ConfigurationError(f"listen address '{address}' must be host:port")
    host = host.strip("[]") or "0.0.0.0"
    try:
        port_number = int(port)
    except ValueError:
        raise ConfigurationError(f"invalid port in listen address '{address}'") from None
    if not 0 <= port_number <= 65535:
        raise ConfigurationError(f"invalid port in listen address '{address}'")
    return host, port_number
