from datetime import datetime
import uuid

from sqlalchemy import Uuid
from sqlalchemy.orm import DeclarativeBase

from inbox.db.types import UtcDateTime


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    type_annotation_map = {
        datetime: UtcDateTime(),
        uuid.UUID: Uuid(),
    }
