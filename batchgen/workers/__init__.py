"""
Celery workers module.

Beat runs one advancement pass every CELERY_ADVANCE_INTERVAL_SECONDS. A pass
claims jobs with a free lease and drives each until it has to wait on the
gateway; leases make overlapping passes and several workers safe.

Dependencies: celery, batchgen.configs
System role: Background job advancement
"""

from celery import Celery
from celery.signals import setup_logging

from batchgen.configs import get_settings
from batchgen.observability import configure_logging

ADVANCE_TASK_NAME = "batchgen.workers.tasks.job_advancement.advance_generation_jobs"

celery_config = get_settings().celery

celery_app = Celery(
    "batchgen",
    broker=celery_config.broker_url,
    backend=celery_config.result_backend_url,
    include=["batchgen.workers.tasks.job_advancement"],
)

celery_app.conf.update(
    task_serializer=celery_config.task_serializer,
    result_serializer=celery_config.result_serializer,
    accept_content=celery_config.accept_content,
    timezone=celery_config.timezone,
    enable_utc=True,
    worker_prefetch_multiplier=1,
    task_time_limit=celery_config.advance_time_limit_seconds,
    beat_schedule={
        "advance-generation-jobs": {
            "task": ADVANCE_TASK_NAME,
            "schedule": celery_config.advance_interval_seconds,
            "kwargs": {"limit": celery_config.advance_batch_limit},
            # A pass still queued when the next one is due is redundant
            "options": {"expires": celery_config.advance_interval_seconds},
        },
    },
)


@setup_logging.connect
def _configure_worker_logging(**kwargs) -> None:
    """Use the application log format in worker processes instead of Celery's."""
    configure_logging(get_settings().log_level)
