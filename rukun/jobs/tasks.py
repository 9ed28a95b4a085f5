"""Job bodies shared by Celery beat and the CLI.

Each job opens its own session, runs one service operation and returns a
plain summary dict so the result is serializable by Celery.
"""

import logging
from decimal import Decimal
from typing import Optional

from celery import shared_task
from sqlalchemy.orm import Session

from rukun.services import SessionLocal
from rukun.services.iuran_service import IuranService
from rukun.services.notification_service import NotificationService
from rukun.services.period_service import current_period

logger = logging.getLogger(__name__)


def _iuran_service(db: Session) -> IuranService:
    return IuranService(db, notifier=NotificationService(db))


def run_monthly_generation(
    period: Optional[str] = None, amount: Decimal | str | None = None
) -> dict:
    """Generate the regular iuran of a period (default: current month)."""
    with SessionLocal() as db:
        result = _iuran_service(db).generate_periodic(period=period, amount=amount)
    logger.info(
        "Monthly generation %s: created=%d skipped=%d",
        result.period,
        result.created,
        result.skipped,
    )
    return {"period": result.period, "created": result.created, "skipped": result.skipped}


def run_yearly_generation(year: int) -> dict:
    with SessionLocal() as db:
        result = _iuran_service(db).generate_yearly(year)
    failed = [u.username for u in result.users if u.error]
    if failed:
        logger.warning("Yearly generation %d failed for: %s", year, ", ".join(failed))
    return {
        "year": result.year,
        "created": result.created,
        "skipped": result.skipped,
        "failed": failed,
    }


def run_due_reminders(period: Optional[str] = None) -> dict:
    """Send jatuh tempo reminders for unpaid iuran of a period (default: current month)."""
    period = period or current_period()
    with SessionLocal() as db:
        reminded = _iuran_service(db).send_due_reminders(period)
    return {"period": period, "reminded": reminded}


@shared_task(name="rukun.jobs.generate_monthly_iuran")
def generate_monthly_iuran(period: Optional[str] = None) -> dict:
    return run_monthly_generation(period)


@shared_task(name="rukun.jobs.send_due_reminders")
def send_due_reminders(period: Optional[str] = None) -> dict:
    return run_due_reminders(period)


__all__ = [
    "run_monthly_generation",
    "run_yearly_generation",
    "run_due_reminders",
    "generate_monthly_iuran",
    "send_due_reminders",
]
