# resume_tailor/celeryconfig.py

import os
from kombu import Queue, Exchange

from resume_tailor.app.config import settings

# redis may live in another docker container,
# in that case point REDIS_URL at it (e.g. redis://host.docker.internal:6379/0)

BROKER_URL = os.getenv("CELERY_BROKER_URL", settings.REDIS_URL)

broker_url = BROKER_URL
# Job state lives in the SQL job store; Celery results are never read
task_ignore_result = True

task_serializer = "json"
accept_content = ["json"]
timezone = "UTC"
enable_utc = True

# -------- Delivery guarantees --------
# A message is acked only after the task returns, and is redelivered if the worker dies.
task_acks_late = True
task_reject_on_worker_lost = True
worker_prefetch_multiplier = 1
worker_concurrency = settings.WORKER_CONCURRENCY

# Unacked messages are redelivered after this many seconds; keep it above the job lease
broker_transport_options = {"visibility_timeout": settings.lease_seconds + settings.RECOVERY_INTERVAL}

# -------- Queues & Routing --------
default_exchange = Exchange("default", type="direct")
llm_exchange = Exchange("llm", type="direct")

task_queues = (
    Queue("default", exchange=default_exchange, routing_key="default"),
    Queue("llm", exchange=llm_exchange, routing_key="llm"),
)

task_default_queue = "default"
task_default_exchange = "default"
task_default_routing_key = "default"

task_routes = {
    "customize_resume": {"queue": "llm", "routing_key": "llm"},
    "recover_abandoned_jobs": {"queue": "llm", "routing_key": "llm"},
    "warmup_llm": {"queue": "llm", "routing_key": "llm"},
}

# -------- Beat --------
beat_schedule = {
    "recover-abandoned-jobs": {
        "task": "recover_abandoned_jobs",
        "schedule": settings.RECOVERY_INTERVAL,
    },
}
