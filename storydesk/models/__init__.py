"""
StoryDesk
SQLAlchemy extension instance shared by all model modules.

Usage:
    from storydesk.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
