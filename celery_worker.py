#!/usr/bin/env python3
"""
Celery worker script for the payment service.
Run this script to start the worker that publishes payment lifecycle events.
"""

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

if __name__ == "__main__":
    from core.celery import celery_app
    from core.logging import configure_logging

    configure_logging()

    # Start Celery worker
    celery_app.start([
        "worker",
        "--loglevel=info",
        "--concurrency=4",
        "--without-gossip",
        "--without-mingle",
        "--without-heartbeat",
    ])
