import uuid
from datetime import datetime
from typing import Dict, Any, Optional

from sqlalchemy import Column, DateTime, Uuid
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator

from utils.datetime_utils import DateTimeManager

Base = declarative_base()


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware DateTime that always round-trips as UTC.
    SQLite drops tzinfo on storage; values are re-attached to UTC on load.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        return DateTimeManager.ensure_utc(value)

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        return DateTimeManager.ensure_utc(value)


class TimestampMixin:
    """
    Mixin for timestamp fields
    Provides created_at and updated_at fields set by the application in UTC
    """

    created_at = Column(
        UTCDateTime(),
        nullable=False,
        default=DateTimeManager.utc_now,
        comment="Record creation timestamp"
    )

    updated_at = Column(
        UTCDateTime(),
        nullable=False,
        default=DateTimeManager.utc_now,
        onupdate=DateTimeManager.utc_now,
        comment="Record last update timestamp"
    )


class AuditMixin:
    """
    Mixin for audit trail
    Tracks who created records
    """

    created_by = Column(
        Uuid(as_uuid=True),
        nullable=True,
        comment="User ID who created this record"
    )


class BaseModel(Base, TimestampMixin):
    """
    Base model class for all database models
    """

    __abstract__ = True

    id = Column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        comment="Primary key UUID"
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert model instance to dictionary"""
        result = {}
        for column in self.__table__.columns:
            value = getattr(self, column.key, None)
            if isinstance(value, datetime):
                result[column.name] = value.isoformat()
            elif isinstance(value, uuid.UUID):
                result[column.name] = str(value)
            else:
                result[column.name] = value
        return result

    def update_from_dict(self, data: Dict[str, Any]) -> None:
        """Update model from dictionary data, leaving identity columns untouched"""
        for key, value in data.items():
            if hasattr(self, key) and key not in ['id', 'created_at', 'created_by']:
                setattr(self, key, value)
        self.updated_at = DateTimeManager.utc_now()

    @classmethod
    def get_table_name(cls) -> str:
        """Get table name of model"""
        return cls.__tablename__

    def __repr__(self) -> str:
        """String representation of model"""
        return f"<{self.__class__.__name__}(id={self.id})>"
