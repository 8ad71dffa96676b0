from sqlalchemy.orm import declarative_base
from sqlalchemy import Column, DateTime, Uuid, func

Base = declarative_base()

# Native UUID on PostgreSQL, CHAR(32) elsewhere
UUID_TYPE = Uuid(as_uuid=True)


class TimestampMixin:
    """Mixin to add created_at and updated_at timestamps to models"""
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)
