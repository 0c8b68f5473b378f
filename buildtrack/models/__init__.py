"""
Construction Progress Engine — SQLAlchemy models.

``db`` is the shared Flask-SQLAlchemy extension instance; it is bound to the
app in ``buildtrack.create_app``.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
