"""Gunicorn production configuration."""
import multiprocessing
import os

bind = os.getenv("GUNICORN_BIND", "0.0.0.0:8000")
workers = int(os.getenv("GUNICORN_WORKERS", multiprocessing.cpu_count() * 2 + 1))
worker_class = "uvicorn.workers.UvicornWorker"
wsgi_app = "backoffice.main:app"
worker_connections = 1000
timeout = 60
keepalive = 5
# Only the load balancer may set the client address via X-Forwarded-For
forwarded_allow_ips = os.getenv("FORWARDED_ALLOW_IPS", "127.0.0.1")
max_requests = 1000
max_requests_jitter = 100
# Each worker keeps its own dedup cache and rate-limit counters
preload_app = True
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("GUNICORN_LOG_LEVEL", "info")
