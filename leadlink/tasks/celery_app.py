from celery import Celery
from celery.schedules import crontab

from leadlink.config import settings

app = Celery(
    "leadlink",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "leadlink.tasks.lead_tasks.*": {"queue": "leads"},
    },
    beat_schedule={
        "purge-expired-enquiries": {
            "task": "leadlink.tasks.lead_tasks.purge_expired_enquiries",
            "schedule": crontab(minute=0),  # every hour
        },
        "release-stale-payment-holds": {
            "task": "leadlink.tasks.lead_tasks.release_stale_payment_holds",
            "schedule": crontab(minute="*/5"),
        },
    },
)

app.autodiscover_tasks(["leadlink.tasks.lead_tasks"])
