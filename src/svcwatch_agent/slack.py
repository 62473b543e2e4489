"""Slack notifications for deleted Services."""

from __future__ import annotations

import logging
from typing import Optional

import requests

from svcwatch.model import Resource
from svcwatch.notifier import MESSAGE_TEMPLATE, Notifier, NullNotifier, format_message

from .config import SlackConfig

LOG = logging.getLogger(__name__)

SLACK_POST_MESSAGE_URL = "https://slack.com/api/chat.postMessage"


class SlackNotifier(Notifier):
    """Post a message to a Slack channel through ``chat.postMessage``."""

    def __init__(
        self,
        token: str,
        channel: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
        template: str = MESSAGE_TEMPLATE,
    ) -> None:
        self._token = token
        self._channel = channel
        self._session = session or requests.Session()
        self._timeout = timeout
        self._template = template

    def notify(self, resource: Resource) -> None:
        text = format_message(resource, self._template)
        try:
            response = self._session.post(
                SLACK_POST_MESSAGE_URL,
                headers={"Authorization": f"Bearer {self._token}"},
                json={"channel": self._channel, "text": text},
                timeout=self._timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            LOG.error("Error posting to slack %s: %s", self._channel, exc)
            return

        if not payload.get("ok"):
            LOG.error(
                "Error posting to slack %s: %s",
                self._channel,
                payload.get("error", "unknown error"),
            )
            return
        LOG.info(
            "Sent notification to slack %s (%s) at %s",
            self._channel,
            payload.get("channel"),
            payload.get("ts"),
        )


def build_notifier(settings: SlackConfig) -> Notifier:
    if not settings.enabled:
        LOG.debug("slack token or channel not configured; notifications disabled")
        return NullNotifier()
    return SlackNotifier(settings.token, settings.channel)
