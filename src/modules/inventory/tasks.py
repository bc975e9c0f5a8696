"""Periodic inventory maintenance."""

import structlog
from celery import shared_task

from modules.inventory.ledger import InventoryLedger

logger = structlog.get_logger(__name__)


@shared_task(name="inventory.expire_stale_reservations")
def expire_stale_reservations():
    """Release holds left behind by abandoned or crashed checkouts."""
    expired = InventoryLedger().expire_stale()
    logger.info("inventory.expire_task.finished", expired=expired)
    return {"expired": expired}
