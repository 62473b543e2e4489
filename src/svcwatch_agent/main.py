"""Entry point for the service watcher agent."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from pathlib import Path
from threading import Event, Thread
from typing import List

from prometheus_client import start_http_server

from svcwatch.classifier import PROVIDERS, ConfigurationError
from svcwatch.metrics import register_collector
from svcwatch.mirror import ResourceMirror
from svcwatch.registry import HandlerRegistry
from svcwatch.store import ResourceStore
from svcwatch.terminator import TerminationWorker
from svcwatch.workqueue import ChangeQueue

from .config import AgentConfig, apply_overrides, load_config, parse_listen_address
from .kube import KubeServiceClient, load_kube_api
from .slack import build_notifier

LOG = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Export Service exposure metrics and optionally delete public Services"
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to an optional YAML configuration file",
    )
    parser.add_argument(
        "--kubeconfig",
        help="Absolute path to the kubeconfig file, otherwise assume running in-cluster.",
    )
    parser.add_argument(
        "--listen-address",
        help="Address to listen on for HTTP requests (default :8080).",
    )
    parser.add_argument(
        "--terminate",
        action="store_true",
        default=None,
        help="Terminate public services immediately.",
    )
    parser.add_argument("--slack-token", help="Slack API token to send notifications.")
    parser.add_argument(
        "--slack-channel",
        help="Slack channel to notify when terminating services.",
    )
    parser.add_argument(
        "--provider",
        help=f"Cloud provider that is being used ({', '.join(sorted(PROVIDERS))}; default aws)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    _setup_logging(args.verbose)

    try:
        config = load_config(args.config) if args.config else AgentConfig()
        config = apply_overrides(config, args)
        policy = config.policy()
        host, port = parse_listen_address(config.listen_address)
        api = load_kube_api(config.kubeconfig)
    except (ConfigurationError, OSError) as exc:
        LOG.error("invalid configuration: %s", exc)
        return 1

    LOG.info("Using %s provider (%s=%s)", policy.name, policy.annotation, policy.value)

    kube_client = KubeServiceClient(api, watch_timeout=config.mirror.watch_timeout)
    store = ResourceStore()
    registry = HandlerRegistry()
    stop_event = Event()

    threads: List[Thread] = [
        ResourceMirror(
            kube_client,
            store,
            registry,
            stop_event,
            backoff_initial=config.mirror.backoff_initial,
            backoff_max=config.mirror.backoff_max,
            min_watch_duration=config.mirror.min_watch_duration,
        )
    ]

    if config.terminate:
        queue = ChangeQueue(store)
        registry.register("terminator", queue)
        threads.append(
            TerminationWorker(
                kube_client,
                queue,
                policy,
                stop_event,
                notifier=build_notifier(config.slack),
                retry_base=config.worker.retry_base,
                retry_max=config.worker.retry_max,
            )
        )

    register_collector(store, policy)
    try:
        start_http_server(port, addr=host)
    except OSError as exc:
        LOG.error("cannot listen on %s: %s", config.listen_address, exc)
        return 1
    LOG.info("Serving on %s", config.listen_address)

    for thread in threads:
        thread.start()

    def _shutdown(signum, frame):  # pragma: no cover - signal handler
        LOG.info("received signal %s, shutting down", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    try:
        while not stop_event.is_set():
            stop_event.wait(1.0)
    except KeyboardInterrupt:  # pragma: no cover - fallback if signal not set
        stop_event.set()

    # the mirror may sit in a watch until the server-side timeout; threads are daemons
    for thread in threads:
        thread.join(timeout=5.0)

    LOG.info("service watcher stopped")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
