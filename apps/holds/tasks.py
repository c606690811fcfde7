"""Celery tasks for hold orders."""

from __future__ import annotations

import structlog
from celery import shared_task  # type: ignore

from apps.holds import conf
from apps.holds.application.command_handlers import (
    ExpireStaleHoldsCommand,
    ExpireStaleHoldsHandler,
    PurgeTerminalHoldsCommand,
    PurgeTerminalHoldsHandler,
)

logger = structlog.get_logger(__name__)


# ============================================================================
# PERIODIC TASKS (запускаются автоматически через Celery Beat)
# ============================================================================

@shared_task(name="holds.expire_stale_holds")
def expire_stale_holds(limit: int = 500) -> dict[str, int]:
    """
    Persist EXPIRED for active holds past their payment deadline.

    Reads already derive the expired state, so this only keeps storage and
    the state filter's index in step. Runs every minute via Celery Beat,
    and does nothing unless AUTO_CANCEL_ON_EXPIRY is enabled.

    Returns:
        dict: {"expired": number of holds moved to EXPIRED}
    """
    if not conf.hold_settings()["AUTO_CANCEL_ON_EXPIRY"]:
        logger.debug("holds.expire_stale_holds.disabled")
        return {"expired": 0}

    handler = ExpireStaleHoldsHandler(conf.get_repository(), clock=conf.get_clock())
    expired = handler.handle(ExpireStaleHoldsCommand(limit=limit))
    if expired:
        logger.info("holds.expire_stale_holds", expired=expired)
    return {"expired": expired}


@shared_task(name="holds.purge_terminal_holds")
def purge_terminal_holds() -> dict[str, int]:
    """
    Delete paid, cancelled and expired holds older than RETENTION_DAYS.

    Runs daily.

    Returns:
        dict: {"deleted": number of rows removed}
    """
    retention_days = conf.hold_settings()["RETENTION_DAYS"]
    handler = PurgeTerminalHoldsHandler(conf.get_repository(), clock=conf.get_clock())
    deleted = handler.handle(PurgeTerminalHoldsCommand(retention_days=retention_days))
    logger.info("holds.purge_terminal_holds", deleted=deleted, retention_days=retention_days)
    return {"deleted": deleted}
