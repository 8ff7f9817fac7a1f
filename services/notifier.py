# services/notifier.py
import logging

import requests

from services.models import StandingOrder

logger = logging.getLogger(__name__)


class WebhookNotifier:
    """
    Tells a standing order's owner that the order changed.

    The payload is the order id as text/plain. Delivery runs on the
    background executor; the outcome is logged and never reported back.
    """

    def __init__(self, executor, timeout: float = 2.0, session=None):
        self.executor = executor
        self.timeout = timeout
        self.session = session or requests

    def notify(self, order: StandingOrder) -> None:
        if not order.webhook_url:
            return
        self.executor.submit(
            f"webhook:{order.id}", self.deliver, order.id, order.webhook_url
        )

    def deliver(self, order_id: int, url: str) -> bool:
        logger.info("Performing a webhook request for standing order %s to URL %s.", order_id, url)
        try:
            r = self.session.post(
                url,
                data=str(order_id),
                headers={"Content-Type": "text/plain"},
                timeout=self.timeout,
            )
            r.raise_for_status()
            return True
        except requests.RequestException as e:
            logger.warning("Webhook for standing order %s to %s failed: %s", order_id, url, e)
            return False
