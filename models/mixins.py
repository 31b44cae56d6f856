from datetime import datetime, timezone
from sqlalchemy import Column, DateTime


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CreatedAtMixin:
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)


class UpdatedAtMixin:
    # bumped by the ORM on every flush that changes the row
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)
