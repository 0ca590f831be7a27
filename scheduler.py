import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from config import get_settings
from database import session_scope
from services import ReconciliationService


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(self) -> None:
        self.settings = get_settings()
        self.scheduler = BackgroundScheduler(timezone=self.settings.timezone)

    def _run_job(self, source: str = "manual") -> dict[str, int]:
        logger.info(f"reconcile_run: source={source}")
        with session_scope() as session:
            counts = ReconciliationService(session).run()
        logger.info(
            f"reconcile_run: source={source} periods={counts['periods']} "
            f"accounts={counts['accounts']}"
        )
        return counts

    def start(self) -> None:
        self._run_job("startup")

        hour = self.settings.reconcile_hour
        minute = self.settings.reconcile_minute
        trigger = CronTrigger(hour=hour, minute=minute)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=[f"daily_{hour:02d}:{minute:02d}"],
            id="reconcile_daily",
            replace_existing=True,
            misfire_grace_time=3600,
        )

        self.scheduler.start()
        logger.info(f"Scheduler started with daily reconciliation at {hour:02d}:{minute:02d}")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
