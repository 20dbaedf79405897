"""
Milk Collection Center domain types

Plain values shared by the pricing core, the data-access layer and the
web views. Rows coming out of the database are converted into these once,
so everything downstream works with closed enums instead of raw strings.
"""

import calendar
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import List, Optional


class Session(str, Enum):
    MORNING = 'morning'
    EVENING = 'evening'

    @classmethod
    def parse(cls, value):
        """Parse 'morning'/'evening' (any case). Raises ValueError otherwise."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Invalid session: {value!r}") from None

    @property
    def label(self):
        return 'Morning' if self is Session.MORNING else 'Evening'


class Role(str, Enum):
    SUPER_ADMIN = 'super_admin'
    DAIRY_DIRECTOR = 'dairy_director'

    @classmethod
    def parse(cls, value):
        """Parse a role string. None or '' means no role."""
        if value is None or isinstance(value, cls):
            return value
        value = str(value).strip().lower()
        if not value or value == 'none':
            return None
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Invalid role: {value!r}") from None


@dataclass(frozen=True)
class Farmer:
    id: int
    name: str
    phone: Optional[str] = None
    village: Optional[str] = None


@dataclass(frozen=True)
class CollectionEntry:
    """One delivery. rate_per_liter and total_amount are frozen at capture."""
    id: Optional[int]
    farmer_id: int
    farmer_name: str
    date: date
    session: Session
    fat_percentage: float
    quantity_liters: float
    rate_per_liter: float
    total_amount: float
    farmer_phone: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class EntrySummary:
    entry_count: int = 0
    total_quantity: float = 0.0
    total_amount: float = 0.0
    morning_quantity: float = 0.0
    evening_quantity: float = 0.0
    average_fat: float = 0.0
    farmer_count: int = 0


@dataclass(frozen=True)
class DailyStats:
    day: date
    summary: EntrySummary
    farmers_count: int


@dataclass(frozen=True)
class MonthlyStatement:
    farmer_id: int
    farmer_name: str
    phone: Optional[str]
    month: int
    year: int
    entries: List[CollectionEntry] = field(default_factory=list)
    total_quantity: float = 0.0
    total_amount: float = 0.0
    average_fat: float = 0.0

    @property
    def month_name(self):
        return calendar.month_name[self.month]

    @property
    def period_label(self):
        return f"{self.month_name} {self.year}"


@dataclass(frozen=True)
class RequestContext:
    """Who is asking, and which dairy center their reads/writes are scoped to."""
    user_id: Optional[int]
    dairy_center_id: Optional[int]
    role: Optional[Role] = None

    @property
    def is_super_admin(self):
        return self.role is Role.SUPER_ADMIN
