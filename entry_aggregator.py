"""
Totals and averages over collection entries.

All sums go through math.fsum, which is exactly rounded, so every
aggregate comes out the same whatever order the entries arrive in.
Amounts are always the per-entry stored amounts; nothing here reprices.
"""

import math
from collections import OrderedDict

from domain import DailyStats, EntrySummary, Session


def total_quantity(entries):
    return math.fsum(e.quantity_liters for e in entries)


def total_amount(entries):
    return math.fsum(e.total_amount for e in entries)


def session_quantity(entries, session):
    session = Session.parse(session)
    return math.fsum(e.quantity_liters for e in entries if e.session is session)


def average_fat(entries):
    """Quantity-weighted average fat. 0 for an empty set (or zero liters)."""
    entries = list(entries)
    liters = total_quantity(entries)
    if not entries or liters == 0:
        return 0
    return math.fsum(e.fat_percentage * e.quantity_liters for e in entries) / liters


def summarize(entries):
    entries = list(entries)
    if not entries:
        return EntrySummary()

    return EntrySummary(
        entry_count=len(entries),
        total_quantity=total_quantity(entries),
        total_amount=total_amount(entries),
        morning_quantity=session_quantity(entries, Session.MORNING),
        evening_quantity=session_quantity(entries, Session.EVENING),
        average_fat=average_fat(entries),
        farmer_count=len({e.farmer_id for e in entries}),
    )


def group_by_date(entries):
    """Map day -> entries of that day, newest day first."""
    groups = {}
    for e in entries:
        groups.setdefault(e.date, []).append(e)
    return OrderedDict(sorted(groups.items(), key=lambda item: item[0], reverse=True))


def group_by_farmer(entries):
    """Map farmer_id -> entries of that farmer, ordered by farmer name."""
    groups = {}
    for e in entries:
        groups.setdefault(e.farmer_id, []).append(e)
    return OrderedDict(
        sorted(groups.items(), key=lambda item: (item[1][0].farmer_name.lower(), item[0]))
    )


def daily_stats(day, entries, farmers_count):
    """Dashboard figures for one day"""
    return DailyStats(day=day, summary=summarize(e for e in entries if e.date == day),
                      farmers_count=farmers_count)
