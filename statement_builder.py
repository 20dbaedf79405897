"""
Monthly statements for farmers.

A statement is derived on demand and never stored. No activity in the
month means no statement at all, rather than an empty one.
"""

import entry_aggregator
from domain import MonthlyStatement, Session

_SESSION_ORDER = {Session.MORNING: 0, Session.EVENING: 1}


def _display_order(entries):
    # newest day first, morning before evening inside a day
    by_session = sorted(entries, key=lambda e: (_SESSION_ORDER[e.session], e.id or 0))
    return sorted(by_session, key=lambda e: e.date, reverse=True)


def build_statement(farmer, month, year, month_entries):
    """
    Build one farmer's statement for a month.

    Args:
        farmer: Farmer the statement is for
        month: 1..12
        year: four digit year
        month_entries: that farmer's entries for the month

    Returns:
        MonthlyStatement, or None when there are no entries
    """
    entries = [e for e in month_entries if e.farmer_id == farmer.id]
    if not entries:
        return None

    return MonthlyStatement(
        farmer_id=farmer.id,
        farmer_name=farmer.name,
        phone=farmer.phone,
        month=month,
        year=year,
        entries=_display_order(entries),
        total_quantity=entry_aggregator.total_quantity(entries),
        total_amount=entry_aggregator.total_amount(entries),
        average_fat=entry_aggregator.average_fat(entries),
    )


def build_statements(farmers, month, year, entries):
    """Statements for every farmer with activity in the month, by farmer name."""
    by_farmer = entry_aggregator.group_by_farmer(entries)
    statements = []
    for farmer in sorted(farmers, key=lambda f: (f.name.lower(), f.id)):
        statement = build_statement(farmer, month, year, by_farmer.get(farmer.id, []))
        if statement is not None:
            statements.append(statement)
    return statements
