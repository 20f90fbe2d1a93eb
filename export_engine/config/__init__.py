"""Configuration for Redis, Celery and the export engine."""
