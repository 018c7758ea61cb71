"""
SMS Micro-Coaching Platform
Model package — shared SQLAlchemy handle.

Model modules import ``db`` from here; ``create_app`` imports every model
module so metadata is complete before ``db.create_all()`` / Alembic runs.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
