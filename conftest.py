"""
Pytest configuration shared by the whole repository.
Environment is set before any application module is imported.
"""
import os

# Set testing environment before importing app
os.environ["TESTING"] = "True"
os.environ["DEBUG"] = "False"
os.environ["EVENT_PUBLISH_VIA_CELERY"] = "False"
os.environ["LOG_JSON"] = "False"
os.environ.setdefault("JWT_SECRET", "test-secret")
