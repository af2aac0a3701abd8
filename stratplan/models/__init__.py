"""
Strategy Planner
SQLAlchemy extension instance shared by all models.

Usage:
    from stratplan.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
