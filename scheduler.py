import logging
from typing import Callable, ContextManager, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy import select
from sqlalchemy.orm import Session

from config import Settings, get_settings
from database import session_scope
from models import Account
from services import RECURRING_DETECTION_FLAG, RecurringTransactionService


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        session_factory: Callable[[], ContextManager[Session]] = session_scope,
    ) -> None:
        self.settings = settings or get_settings()
        self.session_factory = session_factory
        self.scheduler = BackgroundScheduler(timezone=self.settings.timezone)

    def _run_job(self, source: str = "manual") -> int:
        if not self.settings.is_enabled(RECURRING_DETECTION_FLAG):
            logger.info(f"scheduler_run: source={source} skipped=flag_disabled")
            return 0
        logger.info(f"scheduler_run: source={source}")
        detected = 0
        with self.session_factory() as session:
            account_ids = session.scalars(select(Account.id).order_by(Account.id)).all()
            for account_id in account_ids:
                service = RecurringTransactionService(
                    session, account_id, is_enabled=self.settings.is_enabled
                )
                detected += len(service.detect().recurring)
        logger.info(
            f"scheduler_run: source={source} accounts={len(account_ids)} detected={detected}"
        )
        return detected

    def start(self) -> None:
        self._run_job("startup")

        hour = self.settings.detection_hour
        minute = self.settings.detection_minute
        self.scheduler.add_job(
            self._run_job,
            CronTrigger(hour=hour, minute=minute),
            args=[f"daily_{hour:02d}:{minute:02d}"],
            id="recurring_detection_daily",
            replace_existing=True,
            misfire_grace_time=3600,
        )

        self.scheduler.start()
        logger.info(f"Scheduler started with daily detection at {hour:02d}:{minute:02d}")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
