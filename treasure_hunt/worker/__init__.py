"""
Background worker package
"""
from treasure_hunt.worker.celery_app import celery_app

__all__ = ["celery_app"]
