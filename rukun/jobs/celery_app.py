"""Celery application and beat schedule.

Run the scheduler with:

    celery -A rukun.jobs.celery_app worker --beat
"""

from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging

from rukun.config import get_settings
from rukun.services.logging import setup_server_logging

settings = get_settings()

app = Celery("rukun", broker=settings.celery_broker_url, include=["rukun.jobs.tasks"])
app.conf.timezone = "Asia/Jakarta"

app.conf.beat_schedule = {
    "generate-monthly-iuran": {
        "task": "rukun.jobs.generate_monthly_iuran",
        "schedule": crontab(minute=0, hour=0, day_of_month=settings.monthly_generation_day),
    },
    "send-due-reminders": {
        "task": "rukun.jobs.send_due_reminders",
        "schedule": crontab(minute=0, hour=9, day_of_month=settings.reminder_day),
    },
}


@setup_logging.connect
def configure_logging(**kwargs):
    setup_server_logging()
