"""
assessment_engine/orm/base.py
Base model for all ORM models
"""
from sqlalchemy import Column, Integer, DateTime
from sqlalchemy.orm import declarative_base

from assessment_engine.clock import utcnow

Base = declarative_base()


class TimestampMixin:
    """created_at / updated_at columns shared by every table."""

    created_at = Column(
        DateTime,
        default=utcnow,
        nullable=False,
        comment="Timestamp when record was created"
    )

    updated_at = Column(
        DateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
        comment="Timestamp when record was last updated"
    )


class BaseModel(TimestampMixin, Base):
    """
    Abstract base model with common fields.
    Models keyed by an autoincrement integer inherit from this.
    """
    __abstract__ = True
    
    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
        index=True
    )
