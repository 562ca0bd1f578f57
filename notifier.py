"""Slack webhook notifications for sync failures."""
import logging

import requests

logger = logging.getLogger(__name__)


class SlackNotifier:
    def __init__(self, webhook_url, session=None, timeout=10):
        """
        Args:
            webhook_url (str): Incoming webhook endpoint
            session (requests.Session): Optional session, mainly for tests
            timeout (int): Seconds to wait for the webhook to answer
        """
        self.webhook_url = webhook_url
        self.session = session or requests.Session()
        self.timeout = timeout

    def notify(self, message):
        """Post ``{"text": message}`` to the webhook. Failures are logged, never raised."""
        try:
            response = self.session.post(self.webhook_url, json={'text': message}, timeout=self.timeout)
            response.raise_for_status()
            return True
        except requests.RequestException as e:
            logger.error(f"Failed to send Slack notification: {e}")
            return False
