"""
WSGI / Flask CLI entry point.

Usage:
    gunicorn wsgi:app
    flask --app wsgi send-daily-lessons            # external scheduler trigger
    flask --app wsgi db upgrade
"""

from microcoach import create_app

app = create_app()
