"""Gunicorn configuration for the work-order readiness service."""
import os

bind = os.getenv("GUNICORN_BIND", "0.0.0.0:5000")

# Readiness requests are short database reads; a few sync workers are plenty.
workers = int(os.getenv("GUNICORN_WORKERS", "2"))
timeout = int(os.getenv("GUNICORN_TIMEOUT", "30"))

# Log to stdout/stderr by default so container orchestrators can capture logs.
accesslog = os.getenv("GUNICORN_ACCESS_LOGFILE", "-")
errorlog = os.getenv("GUNICORN_ERROR_LOGFILE", "-")
loglevel = os.getenv("GUNICORN_LOG_LEVEL", "info")

forwarded_allow_ips = os.getenv("GUNICORN_FORWARDED_ALLOW_IPS", "*")
