#!/usr/bin/env python3
"""Classify Services from a ``kubectl get services -A -o json`` dump."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, TextIO

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from svcwatch.classifier import PROVIDERS, Exposure, classify, get_policy  # noqa: E402
from svcwatch.model import Resource  # noqa: E402


LOG = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "input",
        nargs="?",
        type=Path,
        help="Path to the JSON service list (reads stdin when omitted)",
    )
    parser.add_argument(
        "--provider",
        default="aws",
        choices=sorted(PROVIDERS),
        help="Cloud provider whose internal annotation applies",
    )
    parser.add_argument(
        "--external-only",
        action="store_true",
        help="Only print Services that would be terminated",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser.parse_args()


def load_services(stream: TextIO) -> List[Resource]:
    payload: Dict[str, Any] = json.load(stream)
    items = payload.get("items")
    if items is None:
        items = [payload]
    services = []
    for item in items:
        if item.get("kind", "Service") != "Service":
            LOG.debug("skipping %s object", item.get("kind"))
            continue
        services.append(Resource.from_manifest(item))
    return services


def main() -> int:
    args = parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    policy = get_policy(args.provider)
    if args.input:
        with args.input.open() as fh:
            services = load_services(fh)
    else:
        services = load_services(sys.stdin)

    external = 0
    for svc in sorted(services, key=lambda s: s.key):
        exposure = classify(svc, policy)
        if exposure is Exposure.EXTERNAL:
            external += 1
        elif args.external_only:
            continue
        print(f"{exposure.value:<9} {svc.type.value:<13} {svc.key}")

    LOG.info("%d of %d services are externally reachable", external, len(services))
    return 1 if external else 0


if __name__ == "__main__":
    sys.exit(main())
