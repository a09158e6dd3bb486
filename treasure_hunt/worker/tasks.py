"""
Celery Tasks for async processing
"""
import logging
from typing import List, Dict, Any
from celery import shared_task

from treasure_hunt.exceptions import NotificationError

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=30)
def send_push_notifications(self, messages: List[Dict[str, Any]]):
    """
    Deliver Expo push messages.

    - Batches of up to 100 per request
    - Transport failures are retried by the client, then by Celery
    """
    from treasure_hunt.services.notification_service import expo_push_client

    try:
        result = expo_push_client.send(messages)
        logger.info(f"Push notifications sent: {result['sent']}")
        return result
    except NotificationError as e:
        logger.error(f"Push notification delivery failed: {e}")
        # Only an unreachable gateway is worth retrying, rejected messages are not
        if isinstance(e.__cause__, Exception):
            raise self.retry(exc=e)
        return {"sent": 0, "error": str(e)}
