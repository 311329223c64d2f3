import os

bind = f"0.0.0.0:{int(os.environ.get('PORT', 5000))}"
workers = int(os.environ.get('WEB_CONCURRENCY', 2))
worker_class = 'sync'

timeout = int(os.environ.get('GUNICORN_TIMEOUT', 120))
keepalive = 5

loglevel = os.environ.get('LOG_LEVEL', 'info').lower()
accesslog = '-'
errorlog = '-'
capture_output = True

limit_request_line = 4094
limit_request_fields = 100


def worker_exit(server, worker):
    """Dispose pooled trust connections when a worker exits."""
    connections = getattr(worker.wsgi, 'extensions', {}).get('connections')
    if connections is not None:
        connections.close_all()
