"""Convenience entry point for running a Celery worker with an embedded beat.

A single process is enough for the one periodic job this service runs.
"""
from __future__ import annotations

from .config.celery import celery_app


def main() -> None:
    celery_app.worker_main(argv=["worker", "--beat", "--loglevel=INFO", "--hostname=worker@%h"])


if __name__ == "__main__":
    main()
