"""Ticket ledger tables."""

from datetime import datetime

import sqlalchemy as sa

from sqlalchemy.orm import Mapped, mapped_column

from genmedia.common.model import Base, DateTimeMixin, TimeZone, id_key
from genmedia.database.db import uuid4_str
from genmedia.utils.timezone import timezone


class UserTicket(Base, DateTimeMixin):
    """Per-user prepaid ticket balance."""

    __tablename__ = 'user_tickets'
    __table_args__ = (
        sa.CheckConstraint('tickets >= 0', name='ck_user_tickets_non_negative'),
        {'comment': 'Ticket balances'},
    )

    email: Mapped[str] = mapped_column(sa.String(320), unique=True, index=True, comment='Account email')
    id: Mapped[str] = mapped_column(
        sa.String(36), primary_key=True, default_factory=uuid4_str, comment='Ticket account ID'
    )
    user_id: Mapped[str | None] = mapped_column(
        sa.String(64), unique=True, index=True, default=None, comment='Identity provider user ID'
    )
    tickets: Mapped[int] = mapped_column(sa.Integer, default=0, comment='Current ticket balance')


class TicketEvent(Base):
    """Append-only ledger entry keyed by usage id."""

    __tablename__ = 'ticket_events'
    __table_args__ = {'comment': 'Ticket ledger events'}

    id: Mapped[id_key] = mapped_column(init=False)
    usage_id: Mapped[str] = mapped_column(sa.String(128), unique=True, index=True, comment='Idempotency key')
    ticket_id: Mapped[str] = mapped_column(
        sa.String(36), sa.ForeignKey('user_tickets.id', ondelete='CASCADE'), index=True, comment='Ticket account ID'
    )
    email: Mapped[str] = mapped_column(sa.String(320), comment='Account email at event time')
    delta: Mapped[int] = mapped_column(sa.Integer, comment='Signed balance change')
    reason: Mapped[str] = mapped_column(sa.String(32), comment='Event reason')
    user_id: Mapped[str | None] = mapped_column(sa.String(64), default=None, comment='Identity provider user ID')
    event_metadata: Mapped[dict | None] = mapped_column('metadata', sa.JSON, default=None, comment='Event metadata')
    created_at: Mapped[datetime] = mapped_column(
        TimeZone, init=False, default_factory=timezone.now, comment='Creation time'
    )


class DailyBonusState(Base):
    """Daily bonus eligibility per ticket account."""

    __tablename__ = 'daily_bonus_state'
    __table_args__ = {'comment': 'Daily bonus state'}

    ticket_id: Mapped[str] = mapped_column(
        sa.String(36), sa.ForeignKey('user_tickets.id', ondelete='CASCADE'), primary_key=True
    )
    next_eligible_at: Mapped[datetime] = mapped_column(TimeZone, comment='Earliest next claim time')
    last_claimed_at: Mapped[datetime | None] = mapped_column(TimeZone, default=None, comment='Last claim time')
    claim_count: Mapped[int] = mapped_column(sa.Integer, default=0, comment='Number of claims')
