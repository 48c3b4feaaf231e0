"""Periodic ticket sweeps.

- Overdue detection (read-only, reports only)
- Auto-close of tickets left unconfirmed by the requester
"""

import logging
from typing import Any

from helpdesk.services.helpdesk.service import get_helpdesk_service
from helpdesk.tasks.base import sweep_task

logger = logging.getLogger(__name__)


@sweep_task(queue="high")
async def check_overdue_tickets(self) -> dict[str, Any]:
    """Scan open tickets for missed approval or processing deadlines.

    @returns Sweep summary
    """
    try:
        result = await get_helpdesk_service().sla_sweep()
    except Exception:
        logger.exception("Overdue sweep failed")
        raise

    if result.overdue:
        logger.warning(
            f"{len(result.overdue)} overdue tickets",
            extra={
                "checked": result.checked,
                "overdue": [o.ticket_number for o in result.overdue],
            },
        )
    else:
        logger.debug(f"No overdue tickets among {result.checked}")

    return {
        "checked": result.checked,
        "overdue": [
            {
                "ticket_id": o.ticket_id,
                "ticket_number": o.ticket_number,
                "status": o.status.value,
                "overdue_hours": round(o.overdue_by.total_seconds() / 3600, 2),
            }
            for o in result.overdue
        ],
        "checked_at": result.checked_at.isoformat(),
    }


@sweep_task(queue="normal")
async def auto_close_unconfirmed(self) -> dict[str, Any]:
    """Auto-close tickets awaiting confirmation past the configured window.

    @returns IDs closed and skipped
    """
    try:
        result = await get_helpdesk_service().auto_close_stale()
    except Exception:
        logger.exception("Auto-close sweep failed")
        raise

    logger.info(
        "Auto-close sweep finished",
        extra={"closed": len(result.closed), "skipped": len(result.skipped)},
    )
    return {"closed": result.closed, "skipped": result.skipped}
