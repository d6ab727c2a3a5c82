# Celery instance is defined in erp_project/celery.py
# It points at the Django settings and autodiscovers ledger_core.tasks
from .celery import celery_app

__all__ = ("celery_app",)

""" Workers are started with "celery -A erp_project worker -l info" """
