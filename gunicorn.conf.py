from __future__ import annotations

import os

# Run from the repository root: `gunicorn -c gunicorn.conf.py`.
chdir = "coopvote_app"
wsgi_app = "config.wsgi:application"

bind = os.environ.get("GUNICORN_BIND", "0.0.0.0:8000")
workers = int(os.environ.get("GUNICORN_WORKERS", "3"))
# Ballot writes are short; a worker stuck this long is holding an election row lock.
timeout = int(os.environ.get("GUNICORN_TIMEOUT", "30"))
graceful_timeout = 20

accesslog = "-"
errorlog = "-"
capture_output = True
loglevel = os.environ.get("LOG_LEVEL", "info").lower()
forwarded_allow_ips = os.environ.get("FORWARDED_ALLOW_IPS", "127.0.0.1")
# %(M)s is the request duration in milliseconds.
access_log_format = '%({x-forwarded-for}i)s %(u)s %(t)s "%(r)s" %(s)s %(b)s %(M)sms "%(a)s"'

logconfig_dict = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "polling_endpoint": {
            "()": "config.logging_filters.PollingEndpointFilter",
        },
    },
    "formatters": {
        "access": {
            "format": "access %(message)s",
        },
        "app": {
            "format": "[{asctime}] {levelname} {process} {name}: {message}",
            "style": "{",
        },
    },
    "handlers": {
        "access": {
            "class": "logging.StreamHandler",
            "formatter": "access",
            "filters": ["polling_endpoint"],
            "stream": "ext://sys.stdout",
        },
        "app": {
            "class": "logging.StreamHandler",
            "formatter": "app",
            "stream": "ext://sys.stderr",
        },
    },
    "loggers": {
        "gunicorn.error": {
            "handlers": ["app"],
            "level": "INFO",
            "propagate": False,
        },
        "gunicorn.access": {
            "handlers": ["access"],
            "level": "INFO",
            "propagate": False,
        },
        "core": {
            "handlers": ["app"],
            "level": os.environ.get("LOG_LEVEL", "INFO").upper(),
            "propagate": False,
        },
    },
    "root": {
        "handlers": ["app"],
        "level": "WARNING",
    },
}
