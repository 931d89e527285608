"""Celery application configuration.

The queue is disabled in this deployment: with task_always_eager the task
body runs synchronously inside .delay(). Point CELERY_TASK_ALWAYS_EAGER=false
at a live Redis to dispatch to workers instead.
"""

import logging

from celery import Celery
from celery.signals import worker_process_init, worker_process_shutdown

from partscraper.config import get_settings

settings = get_settings()

celery_app = Celery(
    "partscraper",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "partscraper.tasks.scrape_tasks",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    task_track_started=True,
    task_always_eager=settings.celery_task_always_eager,
    task_eager_propagates=False,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)


@worker_process_init.connect
def _init_worker_runtime(**kwargs):
    from partscraper.runtime import init_runtime

    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(message)s")
    init_runtime()


@worker_process_shutdown.connect
def _shutdown_worker_runtime(**kwargs):
    from partscraper.runtime import shutdown_runtime

    shutdown_runtime()
