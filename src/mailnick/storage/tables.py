from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from mailnick.models import utcnow


class Base(DeclarativeBase):
    pass


class TokenRow(Base):
    __tablename__ = "tokens"

    # The connected mailbox address doubles as the account id.
    id: Mapped[str] = mapped_column(String, primary_key=True)
    access_token: Mapped[str] = mapped_column(Text)
    refresh_token: Mapped[str] = mapped_column(Text)
    expires_at: Mapped[datetime] = mapped_column(DateTime)


class EmailRow(Base):
    __tablename__ = "emails"

    # Gmail message IDs are only unique within one mailbox.
    id: Mapped[str] = mapped_column(String, primary_key=True)
    account_id: Mapped[str] = mapped_column(String, primary_key=True)
    thread_id: Mapped[str] = mapped_column(String)
    sender: Mapped[str] = mapped_column("from", String)
    sender_domain: Mapped[str] = mapped_column("from_domain", String)
    recipient: Mapped[Optional[str]] = mapped_column("to", String, nullable=True)
    subject: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    snippet: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    received_at: Mapped[datetime] = mapped_column(DateTime, index=True)
    is_unread: Mapped[bool] = mapped_column(Boolean, default=True)
    label_ids: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON array
    category: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    raw_headers: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON for debugging
    synced_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class ActionRow(Base):
    __tablename__ = "action_history"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    account_id: Mapped[str] = mapped_column(String, index=True)
    # No FK constraint: entries outlive a re-synced or deleted email until purged.
    email_id: Mapped[str] = mapped_column(String, index=True)
    action_type: Mapped[str] = mapped_column(String)
    original_state: Mapped[str] = mapped_column(Text)  # JSON
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    undone: Mapped[bool] = mapped_column(Boolean, default=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime)
    rule_id: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True)


class CleanupRuleRow(Base):
    __tablename__ = "cleanup_rules"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    account_id: Mapped[str] = mapped_column(String, index=True)
    name: Mapped[str] = mapped_column(String)
    match_criteria: Mapped[str] = mapped_column(Text)  # JSON
    display_order: Mapped[int] = mapped_column(Integer)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    color: Mapped[Optional[str]] = mapped_column(String, nullable=True)
