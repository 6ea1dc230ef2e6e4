# gunicorn.conf.py
import os
import logging
import sys
import multiprocessing

wsgi_app = "app:create_app()"

# Configure logging to stdout
accesslog = '-'
errorlog = '-'
loglevel = 'info'

# Get PORT from environment or use default
port = os.getenv('PORT', '8080')
bind = f"0.0.0.0:{port}"

# Each request is a short PostgREST round trip, so favour threads
cores = multiprocessing.cpu_count()
workers = min(cores * 2 + 1, 4)
threads = 4

# Log configuration on startup
def on_starting(server):
    logger = logging.getLogger('gunicorn.error')
    logger.setLevel(logging.INFO)
    logger.addHandler(logging.StreamHandler(sys.stdout))
    logger.info(f"Starting orchestrator with {workers} workers on port {port}")

# Requests carry a 7 second upstream timeout; leave headroom above it
timeout = 30
keepalive = 5
worker_class = "gthread"

# Process naming
proc_name = "dse_orchestrator"
default_proc_name = "dse_orchestrator"

# Graceful server restart
graceful_timeout = 30
