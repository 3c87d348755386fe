import logging

from celery import Celery
from celery.schedules import crontab

from .config import settings

logging.getLogger('celery.backends.redis').setLevel(logging.ERROR)

celery_app = Celery(
    "oral_exam_worker",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        'oral_exam.tasks.maintenance',
    ]
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,

    task_routes={
        'oral_exam.tasks.maintenance.*': {'queue': 'maintenance'},
    },

    worker_prefetch_multiplier=1,
    task_acks_late=True,
    worker_max_tasks_per_child=1000,

    task_soft_time_limit=300,
    task_time_limit=600,

    result_expires=3600,
    broker_connection_retry_on_startup=True,

    beat_schedule={
        'cleanup-old-recordings': {
            'task': 'oral_exam.tasks.maintenance.cleanup_old_recordings',
            'schedule': crontab(hour=3, minute=0),
        },
    },
)
