"""
Notification Service - Expo push notifications

Delivery is fire-and-forget from the game's point of view: settlement and
launches enqueue messages on the worker and never wait for, or fail because
of, the push gateway.
"""
import logging
from typing import Dict, Any, List, Optional

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from treasure_hunt.config import settings
from treasure_hunt.exceptions import NotificationError

logger = logging.getLogger(__name__)


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, (httpx.TimeoutException, httpx.TransportError)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return False


def chunk(items: List[Any], size: int) -> List[List[Any]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class ExpoPushClient:
    """Thin client for the Expo push API"""

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        batch_size: Optional[int] = None
    ):
        self.url = url or settings.EXPO_PUSH_URL
        self.timeout = timeout or settings.EXPO_PUSH_TIMEOUT_SEC
        self.batch_size = batch_size or settings.EXPO_PUSH_BATCH_SIZE

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception(_is_retryable),
        reraise=True
    )
    def _post_batch(self, batch: List[Dict[str, Any]]) -> Dict[str, Any]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json"
        }
        with httpx.Client(timeout=self.timeout) as client:
            response = client.post(self.url, json=batch, headers=headers)

        if response.status_code >= 500:
            response.raise_for_status()

        try:
            body = response.json()
        except ValueError:
            body = None

        if not response.is_success:
            errors = (body or {}).get("errors") or []
            detail = errors[0].get("message") if errors else None
            raise NotificationError(detail or f"Expo push failed ({response.status_code})")

        return body or {}

    def send(self, messages: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Send messages in batches; returns the push tickets"""
        tickets: List[Any] = []
        for batch in chunk(messages, self.batch_size):
            try:
                body = self._post_batch(batch)
            except httpx.HTTPError as e:
                raise NotificationError(f"Expo push gateway unreachable: {e}") from e
            tickets.extend(body.get("data") or [])

        return {"sent": len(messages), "tickets": tickets}


class NotificationService:
    """Builds game notifications and hands them to the worker"""

    def dispatch(self, messages: List[Dict[str, Any]]) -> bool:
        """Enqueue messages for delivery; failures are logged, never raised"""
        if not messages:
            return False
        if not settings.PUSH_NOTIFICATIONS_ENABLED:
            logger.info(f"Push notifications disabled - dropping {len(messages)} message(s)")
            return False

        try:
            from treasure_hunt.worker.tasks import send_push_notifications
            send_push_notifications.delay(messages)
            return True
        except Exception as e:
            logger.error(f"Could not enqueue {len(messages)} push notification(s): {e}")
            return False

    def build_game_live_messages(self, game, tokens: List[str]) -> List[Dict[str, Any]]:
        prize = f"{game.prize_amount:g}" if game.prize_amount else "0"
        return [
            {
                "to": token,
                "sound": "default",
                "title": "Game is LIVE!",
                "body": f"{game.name} is LIVE! Prize: ${prize}",
                "data": {"gameId": game.id, "type": "game_live"}
            }
            for token in tokens
        ]


# Singleton instances
expo_push_client = ExpoPushClient()
notification_service = NotificationService()
