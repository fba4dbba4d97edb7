from datetime import datetime
from typing import Annotated

import sqlalchemy as sa

from sqlalchemy.orm import DeclarativeBase, Mapped, MappedAsDataclass, mapped_column

from genmedia.utils.timezone import timezone

# Integer autoincrement primary key
id_key = Annotated[
    int,
    mapped_column(
        sa.BigInteger().with_variant(sa.Integer, 'sqlite'),
        primary_key=True,
        unique=True,
        index=True,
        autoincrement=True,
        sort_order=-999,
        comment='Primary key ID',
    ),
]


class TimeZone(sa.TypeDecorator[datetime]):
    """Timezone-aware datetime column that always loads as UTC."""

    impl = sa.DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: sa.Dialect) -> datetime | None:
        return timezone.aware(value)

    def process_result_value(self, value: datetime | None, dialect: sa.Dialect) -> datetime | None:
        return timezone.aware(value)


class Base(MappedAsDataclass, DeclarativeBase):
    """Declarative dataclass base for all tables"""


class DateTimeMixin(MappedAsDataclass):
    """Creation and update timestamps"""

    created_at: Mapped[datetime] = mapped_column(
        TimeZone, init=False, default_factory=timezone.now, sort_order=999, comment='Creation time'
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        TimeZone, init=False, default=None, onupdate=timezone.now, sort_order=999, comment='Update time'
    )
