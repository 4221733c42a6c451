# pokebot/models.py
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Text

from .db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ChatSession(Base):
    __tablename__ = "whatsapp_sessions"
    phone = Column(String, primary_key=True)
    state_json = Column(Text, default="{}")  # SessionState (mode, builder/checkout, debounce buffer)
    updated_at = Column(DateTime, default=_utcnow)


class Order(Base):
    __tablename__ = "orders"
    id = Column(Integer, primary_key=True)
    phone = Column(String, index=True, nullable=False)
    customer_name = Column(String, nullable=False)
    delivery_method = Column(String, nullable=False)  # pickup | delivery
    product_slug = Column(String, nullable=False)
    total = Column(Integer, nullable=False)
    status = Column(String, default="pending")  # pending | preparing | done
    payment_status = Column(String, default="pending")
    created_at = Column(DateTime, default=_utcnow)
    summary_text = Column(Text, default="")
    items_json = Column(Text, default="[]")
