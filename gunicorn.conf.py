"""
Gunicorn Configuration

Uvicorn workers serving the merchandising insights API.
"""

import os

# Server socket
bind = os.getenv("BIND", "0.0.0.0:8000")
backlog = 512

# Loaded reports and notification state are held in worker memory;
# more than one worker means each keeps its own copy.
workers = int(os.getenv("WORKERS", 1))
worker_class = "uvicorn.workers.UvicornWorker"
# Excel parsing and a full recompute can take a while on large uploads
timeout = int(os.getenv("WORKER_TIMEOUT", 180))
graceful_timeout = 30
keepalive = 5
# No max_requests: recycling a worker would drop its loaded reports

proc_name = "merch-insights-api"
daemon = False

# Logging (application logs go through structlog on stdout)
errorlog = "-"
accesslog = "-"
loglevel = os.getenv("LOG_LEVEL", "info")


def when_ready(server):
    if workers > 1:
        server.log.warning(
            "Running %d workers; report state is not shared between them", workers
        )
