"""Stored connection to a customer's hosted database."""

from sqlalchemy import Column, DateTime, String, Text, func

from orgpulse.core.database import Base
from orgpulse.models.shared import UUIDType, generate_uuid


class UserConnection(Base):
    __tablename__ = "user_connections"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    user_id = Column(String(255), unique=True, index=True, nullable=False)
    supabase_url = Column(String(2048), nullable=False)
    encrypted_key = Column(Text, nullable=False)
    connection_name = Column(String(255), nullable=False, default="My Supabase")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
