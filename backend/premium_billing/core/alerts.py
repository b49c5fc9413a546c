"""Operator alert channel for billing failures that need a human.

Alerts are logged at error level and pushed onto a Redis list that an
alerting consumer drains. Pushing is best-effort: a Redis failure is
logged and never propagates into webhook handling.
"""

import json
from datetime import UTC, datetime

import structlog
from redis.asyncio import Redis

logger = structlog.get_logger(__name__)

ALERT_QUEUE_KEY = "premium:operator_alerts"


class OperatorAlerts:
    """Surface operational errors (unknown payer, provider rejection, ...) to operators."""

    def __init__(self, redis: Redis | None, queue_key: str = ALERT_QUEUE_KEY):
        self.redis = redis
        self.queue_key = queue_key

    async def raise_alert(self, kind: str, **context) -> None:
        """Log and enqueue an alert.

        Args:
            kind: Alert identifier (e.g. "user_not_found", "provider_rejected")
            **context: JSON-serializable details (reference, email, ...)
        """
        logger.error("operator_alert", kind=kind, **context)

        if self.redis is None:
            return

        entry = json.dumps(
            {
                "kind": kind,
                "context": context,
                "raised_at": datetime.now(UTC).isoformat(),
            },
            default=str,
        )
        try:
            await self.redis.rpush(self.queue_key, entry)
        except Exception as e:
            logger.warning("operator_alert_enqueue_failed", kind=kind, error=str(e), error_type=type(e).__name__)
