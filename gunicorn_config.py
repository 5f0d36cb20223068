"""Gunicorn configuration for the gallery"""
import os
import multiprocessing

# Server socket
bind = os.getenv('GUNICORN_BIND', '0.0.0.0:9600')
backlog = 2048

# Sync workers: one request per worker, session state is per request
workers = int(os.getenv('GUNICORN_WORKERS', multiprocessing.cpu_count() * 2 + 1))
worker_class = 'sync'
max_requests = 1000
max_requests_jitter = 50
timeout = 60
keepalive = 2

# Logging
accesslog = os.getenv('GUNICORN_ACCESS_LOG', '-')
errorlog = os.getenv('GUNICORN_ERROR_LOG', '-')
loglevel = 'info'
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

proc_name = 'gallery'

# Development vs Production
reload = os.getenv('FLASK_ENV') == 'development'

def when_ready(server):
    """Called just after the server is started."""
    server.log.info("Gallery server is ready. Listening on: %s", server.cfg.bind)
    if not os.getenv('NSFW_CONSENT_SECRET'):
        server.log.warning("NSFW_CONSENT_SECRET not set, NSFW consent will not persist across sessions")
