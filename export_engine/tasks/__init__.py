"""
Celery Tasks

Task modules are imported by the worker through celery_app.conf.imports,
after the Celery app exists.
"""
