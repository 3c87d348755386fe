#!/usr/bin/env python3
"""
Celery worker / beat entry point for the oral exam service.

    celery -A celery_worker worker -Q maintenance
    celery -A celery_worker beat
"""

from oral_exam.core.celery_app import celery_app

if __name__ == '__main__':
    celery_app.start()
