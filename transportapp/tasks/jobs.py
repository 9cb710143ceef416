from transportapp.tasks.celery_app import celery
from transportapp.tasks import worker_jobs


@celery.task(name="transportapp.tasks.jobs.send_admin_notification")
def send_admin_notification(text: str, buttons: list | None = None):
    return worker_jobs.send_admin_notification(text, buttons)


@celery.task(name="transportapp.tasks.jobs.backfill_public_tokens")
def backfill_public_tokens(limit: int = 200):
    return worker_jobs.backfill_public_tokens(limit=limit)
