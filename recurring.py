"""
recurring.py
------------
Generate the concrete, dated transactions owed by every active recurring
template. A run resumes each template from its most recently generated
instance, so it can be repeated at any time without creating duplicates.

Long-lived deployments keep a ``RecurringScheduler`` running (daily at
midnight). Serverless deployments trigger a run from cron instead:

    python recurring.py --now 2024-04-15T00:00:00
"""

from __future__ import annotations

import argparse
import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterator, List, Optional

from dateutil.relativedelta import relativedelta
from dotenv import load_dotenv
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from database import SessionLocal, Status, Transaction, engine, init_db, make_engine
from errors import InvalidFrequency

load_dotenv()

logger = logging.getLogger(__name__)

# Serverless hosts have no persistent process to keep a timer alive
IS_SERVERLESS = os.getenv("VERCEL") == "1"
SCHEDULER_SETTING = os.getenv("RECURRING_SCHEDULER", "on")

PERIODS = {
    "daily": relativedelta(days=1),
    "weekly": relativedelta(weeks=1),
    "monthly": relativedelta(months=1),
    "yearly": relativedelta(years=1),
}


def next_due_date(anchor: datetime, frequency: str) -> datetime:
    """
    One period after ``anchor``. Month and year steps clamp to the last day
    of shorter months (Jan 31 -> Feb 29 in a leap year).
    """
    frequency = getattr(frequency, "value", frequency)
    try:
        period = PERIODS[frequency]
    except KeyError:
        raise InvalidFrequency(frequency) from None
    return anchor + period


def last_generated_instance(db: Session, template: Transaction) -> Optional[Transaction]:
    # Matched on description/amount/category, not on a template id.
    # Two templates sharing all three fields will share instances.
    return (
        db.query(Transaction)
        .filter(
            func.coalesce(Transaction.description, "") == (template.description or ""),
            Transaction.amount == template.amount,
            func.coalesce(Transaction.category, "") == (template.category or ""),
            Transaction.is_recurring == False,
        )
        .order_by(Transaction.date.desc(), Transaction.id.desc())
        .first()
    )


def materialize_template(db: Session, template: Transaction, now: datetime) -> Iterator[Transaction]:
    """Insert every instance of ``template`` due on or before ``now``, yielding each one once committed."""
    last = last_generated_instance(db, template)
    anchor = last.date if last is not None else template.date
    frequency = template.frequency

    due = next_due_date(anchor, frequency)
    while due <= now:
        instance = template.copy_as_instance(due)
        db.add(instance)
        db.commit()
        db.refresh(instance)
        yield instance
        due = next_due_date(due, frequency)


@dataclass
class MaterializationReport:
    created: List[Transaction] = field(default_factory=list)
    failures: Dict[int, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures


def active_templates(db: Session) -> List[Transaction]:
    return (
        db.query(Transaction)
        .filter(Transaction.is_recurring == True, Transaction.status == Status.active.value)
        .order_by(Transaction.id)
        .all()
    )


def process_recurring_transactions(db: Session, now: Optional[datetime] = None) -> MaterializationReport:
    """
    Materialize all active templates up to ``now`` (default: current local time).

    Templates are processed one after another. A template with an unknown
    frequency, or one whose insert fails, is recorded in the report and
    skipped; instances it already committed are kept and the next run picks
    up from them.
    """
    now = now or datetime.now()
    if now.tzinfo is not None:
        # Stored dates are naive local time
        now = now.astimezone().replace(tzinfo=None)
    report = MaterializationReport()

    for template in active_templates(db):
        template_id = template.id
        try:
            for instance in materialize_template(db, template, now):
                report.created.append(instance)
        except InvalidFrequency as exc:
            logger.warning("Skipping recurring transaction %s: %s", template_id, exc)
            report.failures[template_id] = str(exc)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Failed to materialize recurring transaction %s", template_id)
            report.failures[template_id] = str(exc)

    logger.info(
        "Recurring run up to %s: %d transactions created, %d templates failed",
        now.isoformat(timespec="seconds"),
        len(report.created),
        len(report.failures),
    )
    return report


# --- Scheduling ---

def scheduler_enabled() -> bool:
    if IS_SERVERLESS:
        return False
    return SCHEDULER_SETTING.strip().lower() not in ("off", "0", "false", "no")


def seconds_until_midnight(now: Optional[datetime] = None) -> float:
    now = now or datetime.now()
    midnight = (now + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
    return (midnight - now).total_seconds()


class RecurringScheduler:
    """
    Runs the materializer once a day at local midnight on a daemon timer.

    ``stop()`` cancels the pending timer; a run already in progress finishes
    and is simply not rescheduled.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        delay: Callable[[], float] = seconds_until_midnight,
    ):
        self._session_factory = session_factory
        self._delay = delay
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        with self._lock:
            if self._running:
                return
            self._running = True
            self._schedule()

    def stop(self):
        with self._lock:
            self._running = False
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _schedule(self):
        self._timer = threading.Timer(self._delay(), self._fire)
        self._timer.daemon = True
        self._timer.start()

    def _fire(self):
        try:
            self.run_once()
        except SQLAlchemyError:
            logger.exception("Recurring transaction processor failed")
        finally:
            with self._lock:
                if self._running:
                    self._schedule()

    def run_once(self, now: Optional[datetime] = None) -> MaterializationReport:
        logger.info("Running recurring transaction processor...")
        db = self._session_factory()
        try:
            report = process_recurring_transactions(db, now=now)
        finally:
            db.close()
        logger.info("Recurring transactions processed successfully!")
        return report


# --- CLI ---

def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Generate due instances of recurring transactions.")
    parser.add_argument(
        "--now",
        type=datetime.fromisoformat,
        default=None,
        help="ISO timestamp to treat as the current time (default: now)",
    )
    parser.add_argument("--database-url", default=None, help="Overrides DATABASE_URL")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.database_url:
        bind = make_engine(args.database_url)
        session_factory = sessionmaker(autocommit=False, autoflush=False, bind=bind)
    else:
        bind = engine
        session_factory = SessionLocal

    init_db(bind)
    db = session_factory()
    try:
        report = process_recurring_transactions(db, now=args.now)
        print(f"Created {len(report.created)} transactions, {len(report.failures)} templates failed.")
    finally:
        db.close()
    return 0 if report.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
