"""Gunicorn configuration for the instructor portal.

Run with: gunicorn -c gunicorn.conf.py
"""

import os

wsgi_app = "portal.web.app:create_app()"

bind = f"{os.environ.get('PORTAL_HOST', '0.0.0.0')}:{os.environ.get('PORT', '8000')}"
# SQLite serializes writers; raise only with DATABASE_URL pointing at PostgreSQL
workers = int(os.environ.get("PORTAL_WORKERS", "2"))
timeout = 60
accesslog = "-"
errorlog = "-"
loglevel = os.environ.get("PORTAL_LOG_LEVEL", "info")
