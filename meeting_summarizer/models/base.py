"""
Declarative base shared by all models.
"""
import uuid
from datetime import datetime

from sqlalchemy.orm import declarative_base

Base = declarative_base()


def new_id() -> str:
    """Primary keys are opaque string identifiers."""
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.utcnow()
