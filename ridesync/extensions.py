"""
Initialize Flask extensions for the application.

These extensions are instantiated here and initialized in the application factory.
"""

from flask_sqlalchemy import SQLAlchemy

# SQLAlchemy for the local record store
db = SQLAlchemy()


def init_extensions(app):
    """Initialize all Flask extensions."""
    db.init_app(app)
