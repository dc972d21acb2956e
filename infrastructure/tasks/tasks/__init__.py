"""Task modules grouped by domain.

Import side effects register Celery tasks once this package is imported.
"""
from . import orders_schedule  # noqa: F401 to register tasks

__all__ = ["orders_schedule"]
