"""
Officer Model — Reviewing officers and their role/specialty.
Maps to the 'officers' table.
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, Boolean, Enum

from licensing.database import Base
from licensing.models.enums import OfficerRole, PositionType


class Officer(Base):
    __tablename__ = "officers"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    name = Column(String(128), nullable=False)
    email = Column(String(255), nullable=False, index=True)   # Login OTP identifier
    phone = Column(String(20))

    role = Column(Enum(OfficerRole, native_enum=False, length=32), nullable=False, index=True)
    # Assistant Engineers review one position type only
    specialty = Column(Enum(PositionType, native_enum=False, length=32), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
