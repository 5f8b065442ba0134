# cart_session/celery_worker.py
from celery import Celery

from cart_session.utils.settings import CELERY_BROKER_URL, CELERY_RESULT_BACKEND, REAPER_INTERVAL_SECONDS

celery_app = Celery(
    "cart_session",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# tasks must be imported explicitly so the worker registers them
celery_app.conf.imports = (
    "cart_session.tasks.expire",
)

celery_app.conf.beat_schedule = {
    "reap-expired-carts-daily": {
        "task": "cart_session.tasks.expire.reap_expired_carts_task",
        "schedule": REAPER_INTERVAL_SECONDS,  # once a day by default
    },
}

celery_app.conf.timezone = "UTC"
