import os

from celery import Celery
from celery.schedules import crontab  # type: ignore

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.dev")

app = Celery("flight_holds")

app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()


# ============================================================================
# CELERY BEAT SCHEDULE (Periodic Tasks)
# ============================================================================

app.conf.beat_schedule = {
    # Persist lazily derived expiry - every minute
    "expire-stale-holds": {
        "task": "holds.expire_stale_holds",
        "schedule": 60.0,
        "options": {"expires": 50},
    },
    # Retention of terminal holds - daily
    "purge-terminal-holds": {
        "task": "holds.purge_terminal_holds",
        "schedule": crontab(hour=3, minute=30),
    },
}

app.conf.timezone = "UTC"
