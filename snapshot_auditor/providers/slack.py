"""
Slack integration: operator alerts over an incoming webhook, and upload of
the audit report PDF to the report channel with the bot token.
"""

import logging
import os

import requests

from .base import AlertSink

logger = logging.getLogger(__name__)

SLACK_API_URL = "https://slack.com/api"


class ReportUploadError(Exception):
    """Slack rejected the report upload."""
    pass


class SlackAlertSink(AlertSink):
    """Post alerts as a bold mrkdwn section to a Slack incoming webhook."""

    def __init__(self, webhook_url: str | None, timeout: int = 10):
        self.webhook_url = webhook_url
        self.timeout = timeout

    def notify(self, message: str) -> None:
        if not self.webhook_url:
            logger.warning(f"No Slack webhook configured, alert not delivered: {message}")
            return

        payload = {
            "blocks": [
                {
                    "type": "section",
                    "text": {"type": "mrkdwn", "text": f"*{message}*"},
                }
            ]
        }
        try:
            response = requests.post(self.webhook_url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Slack notify failed for '{message}': {e}")
            return
        logger.info(f"Sent Slack alert: {message}")


class SlackReportUploader:
    """Upload a file to a channel using Slack's external upload flow."""

    def __init__(self, token: str, channel_id: str, timeout: int = 60):
        self.token = token
        self.channel_id = channel_id
        self.timeout = timeout

    def _api(self, method: str, **kwargs) -> dict:
        headers = {"Authorization": f"Bearer {self.token}"}
        try:
            response = requests.post(
                f"{SLACK_API_URL}/{method}", headers=headers, timeout=self.timeout, **kwargs
            )
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError) as e:
            raise ReportUploadError(f"{method} failed: {e}") from e

        if not body.get("ok"):
            raise ReportUploadError(f"{method} failed: {body.get('error', 'unknown error')}")
        return body

    def upload(self, path: str, title: str) -> str:
        """
        Upload ``path`` to the report channel.

        Returns:
            Slack file id

        Raises:
            ReportUploadError: If any step of the upload is rejected
        """
        filename = os.path.basename(path)
        with open(path, "rb") as f:
            content = f.read()

        ticket = self._api(
            "files.getUploadURLExternal",
            data={"filename": filename, "length": len(content)},
        )
        try:
            upload_url = ticket["upload_url"]
            file_id = ticket["file_id"]
        except KeyError as e:
            raise ReportUploadError(f"files.getUploadURLExternal response missing {e}") from e

        try:
            response = requests.post(
                upload_url,
                files={"file": (filename, content, "application/pdf")},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise ReportUploadError(f"upload of {filename} failed: {e}") from e

        self._api(
            "files.completeUploadExternal",
            json={
                "files": [{"id": file_id, "title": title}],
                "channel_id": self.channel_id,
            },
        )
        logger.info(f"Uploaded {filename} to Slack channel {self.channel_id}")
        return file_id
