"""
main.py

Flask entry point of the export job engine.

Dependencies:
  - Python packages: Flask, flask-restx, flask-cors, redis, celery
  - Infrastructure: Redis server (job store, Celery broker and result backend)

Notes:
  - API v1 endpoints available at /api/v1/ with Swagger docs at /api/v1/docs
  - Export jobs run on Celery workers (EXPORT_EXECUTOR=celery) or on an
    in-process thread pool (EXPORT_EXECUTOR=thread)
  - Run workers with: celery -A celery_app.celery_app worker -B
"""

import logging
import os

from app_factory import create_app

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = create_app()

if __name__ == "__main__":
    host = os.getenv("FLASK_HOST", "0.0.0.0")
    port = int(os.getenv("FLASK_PORT", 8000))
    debug = os.getenv("FLASK_DEBUG", "false").lower() == "true"

    app.run(host=host, port=port, debug=debug)
