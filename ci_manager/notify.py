# /*
# Copyright 2026 The Mayastor CI Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */

"""Chat notifications through a Slack incoming webhook."""

from __future__ import annotations

import requests

from ci_manager import console, logger
from ci_manager.config import SlackConfig
from ci_manager.constants import HTTP_TIMEOUT_SECONDS, SEVERITY_DANGER, SEVERITY_GOOD, SEVERITY_WARNING

_SEVERITY_STYLE = {
    SEVERITY_GOOD: "green",
    SEVERITY_WARNING: "yellow",
    SEVERITY_DANGER: "red",
}


class SlackNotifier:
    """Posts ``{channel, severity, message}`` notifications.

    Without a webhook URL the notification is only printed, which keeps local
    and dry runs quiet.
    """

    def __init__(self, cfg: SlackConfig, session: requests.Session | None = None) -> None:
        self.cfg = cfg
        self.session = session or requests.Session()

    def notify(self, channel: str, severity: str, message: str) -> bool:
        """Send one notification.

        Args:
            channel: Chat channel, e.g. ``#mayastor-backend``.
            severity: One of ``good``, ``warning`` or ``danger``.
            message: Message body.

        Returns:
            True if the message was delivered.
        """
        style = _SEVERITY_STYLE.get(severity, "white")
        console.print(f"[{style}]\U0001f4e3 {channel}: {message}[/{style}]")
        if not self.cfg.webhook_url:
            return False

        payload = {
            "channel": channel,
            "attachments": [{"color": severity, "text": message, "mrkdwn_in": ["text"]}],
        }
        try:
            resp = self.session.post(self.cfg.webhook_url, json=payload, timeout=HTTP_TIMEOUT_SECONDS)
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.warning("Failed to notify %s: %s", channel, e)
            return False
        return True
