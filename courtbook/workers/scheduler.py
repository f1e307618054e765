from datetime import timedelta
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from ..config import get_settings
from ..core.clock import utc_now
from ..db.session import SessionLocal
from ..services.notification_service import EmailNotificationSink, NotificationSink
from ..services.survey_service import run_survey_sweep

logger = logging.getLogger(__name__)


def send_post_booking_surveys(sink: NotificationSink | None = None) -> int:
    settings = get_settings()
    sink = sink or EmailNotificationSink(settings)
    with SessionLocal() as db:
        try:
            return run_survey_sweep(
                db,
                sink,
                now=utc_now(),
                frontend_url=settings.frontend_url,
                cooldown=timedelta(hours=settings.survey_delay_hours),
                lookback=timedelta(hours=settings.survey_window_hours),
            )
        except Exception:
            logger.exception("Post-booking survey sweep failed")
            return 0


def get_scheduler() -> AsyncIOScheduler:
    settings = get_settings()
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        send_post_booking_surveys,
        "interval",
        minutes=settings.survey_sweep_minutes,
        id="post_booking_surveys",
        max_instances=1,
        coalesce=True,
    )
    return scheduler
