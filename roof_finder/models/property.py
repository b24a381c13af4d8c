from sqlalchemy import Column, String, Float, Text, Uuid
from roof_finder.db.base import Base, TimestampMixin
import uuid


class Property(Base, TimestampMixin):
    __tablename__ = "properties"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    # Accounts live in the CRM; only the reference is kept here
    account_id = Column(Uuid, nullable=True, index=True)

    name = Column(String(255), nullable=False)
    address = Column(String(500), nullable=False)
    city = Column(String(100))
    state = Column(String(50))
    zip_code = Column(String(20))
    building_type = Column(String(100))  # Commercial Office, Industrial, Retail...
    square_footage = Column(Float)
    notes = Column(Text)
