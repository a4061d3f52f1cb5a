"""
Site Progress Tracker
SQLAlchemy extension instance shared by all models.

Usage:
    from sitetrack.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
