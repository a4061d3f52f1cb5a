"""
WSGI / Flask-Migrate entry point.

Usage:
    flask --app wsgi db init && flask --app wsgi db migrate
    gunicorn --threads 8 wsgi:app     # the SSE stream needs threaded workers
"""

from sitetrack import create_app

app = create_app()
