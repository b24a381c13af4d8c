from sqlalchemy import Column, String, Text, Uuid, JSON
from roof_finder.db.base import Base, TimestampMixin
from enum import Enum
import uuid


class ProspectStatus(str, Enum):
    UNCONTACTED = "uncontacted"
    RESEARCHING = "researching"
    ATTEMPTING = "attempting"
    ENGAGED = "engaged"
    CONVERTED = "converted"
    DISQUALIFIED = "disqualified"


class Prospect(Base, TimestampMixin):
    __tablename__ = "prospects"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    name = Column(String(255), nullable=False)
    address = Column(String(500), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(50), nullable=True)
    zip_code = Column(String(20), nullable=True)
    notes = Column(Text, nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    source = Column(String(100), nullable=True)
    status = Column(String(30), nullable=False, default=ProspectStatus.UNCONTACTED.value)
    created_by = Column(Uuid, nullable=True)
