# resume_tailor/worker/worker.py

from celery import Celery
from celery.signals import worker_ready
from resume_tailor.app.config import settings

# Create Celery app
celery_app = Celery("resume_tailor")
celery_app.config_from_object("resume_tailor.celeryconfig")

# Ensure tasks are imported on worker start
import resume_tailor.app.core.tasks       # noqa: F401,E402


@worker_ready.connect
def _on_ready(sender=None, **kwargs):
    """
    Sweep for jobs orphaned while no worker was running, then warm the model
    if enabled. Both go through the llm queue.
    """
    celery_app.send_task("recover_abandoned_jobs", queue="llm", routing_key="llm")
    if settings.WARMUP_ENABLED:
        celery_app.send_task("warmup_llm", queue="llm", routing_key="llm")
