"""
WSGI / Flask-Migrate entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi seed-default-template
    gunicorn wsgi:app
"""

from buildtrack import create_app

app = create_app()
