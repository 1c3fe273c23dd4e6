"""
Pytest configuration shared by every suite.

Environment defaults are applied before any ``app`` module is imported so
the settings object, database engine and log handlers are built for tests.
"""
import os
import tempfile

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-unit-tests-0123456789")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SKIP_DB_INIT", "true")
os.environ.setdefault("LOG_DIR", os.path.join(tempfile.gettempdir(), "trackline-test-logs"))
os.environ.setdefault("APP_URL", "http://testserver")
os.environ.setdefault("CLICKUP_CLIENT_ID", "test-client-id")
os.environ.setdefault("CLICKUP_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("R2_PUBLIC_URL", "https://cdn.example.com")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")
