"""Marketplace listings evaluated by reward campaigns."""

from uuid import uuid4

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Numeric, String, func
from sqlalchemy.dialects.postgresql import UUID

from swaply_rewards.db.base import Base


class Listing(Base):
    __tablename__ = "listings"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=True)
    category = Column(String, nullable=True)
    city = Column(String, nullable=True)
    price = Column(Numeric(12, 2), nullable=True)
    images = Column(JSON, nullable=True)
    status = Column(String(length=32), nullable=False, default="draft", server_default="draft")
    is_active = Column(Boolean, nullable=True, default=True, server_default="true")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
