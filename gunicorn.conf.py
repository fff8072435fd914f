"""
Gunicorn configuration for the Endgame API.

Env vars that override defaults:
  PORT     — TCP port to bind (default: 8000)
  WORKERS  — number of worker processes (default: 2)

The time-condition sweep is not run in-process; an external scheduler
calls POST /conditions/check-time.
"""
import os

bind = f"0.0.0.0:{os.environ.get('PORT', '8000')}"

# Condition checks are idempotent, so any number of workers may race on
# the same event safely.
workers = int(os.environ.get("WORKERS", "2"))

# Each worker runs Uvicorn's ASGI event loop inside Gunicorn's process manager.
worker_class = "uvicorn.workers.UvicornWorker"

keepalive = 5

# Kill a worker that hasn't responded in 120 s.
timeout = 120

# Logs to stdout; the app's own loggers use LOG_LEVEL.
loglevel = os.environ.get("LOG_LEVEL", "info").lower()
accesslog = "-"
errorlog = "-"
access_log_format = '%(h)s "%(r)s" %(s)s %(b)sB %(D)sµs'

# Graceful restart: wait up to 30 s for in-flight requests to finish.
graceful_timeout = 30
