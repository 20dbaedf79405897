"""Tests for entry totals, session splits and weighted fat."""

import dataclasses
import random
from datetime import date

import pytest

import entry_aggregator
from conftest import make_entry
from domain import EntrySummary, Session


def test_day_with_morning_and_evening_delivery():
    entries = [
        make_entry(4.5, 10, Session.MORNING),
        make_entry(4.5, 10, Session.EVENING),
    ]
    assert entries[0].rate_per_liter == 40.00
    assert entries[0].total_amount == 400.00

    summary = entry_aggregator.summarize(entries)
    assert summary.total_quantity == 20
    assert summary.total_amount == 800
    assert summary.morning_quantity == 10
    assert summary.evening_quantity == 10
    assert summary.entry_count == 2
    assert summary.farmer_count == 1


def test_session_quantity_accepts_strings():
    entries = [make_entry(4.0, 3, Session.MORNING), make_entry(4.0, 7, Session.EVENING)]
    assert entry_aggregator.session_quantity(entries, "evening") == 7
    assert entry_aggregator.session_quantity(entries, Session.MORNING) == 3


def test_average_fat_is_weighted_by_quantity():
    entries = [make_entry(3.0, 10), make_entry(4.0, 10)]
    assert entry_aggregator.average_fat(entries) == 3.5

    skewed = [make_entry(3.0, 30), make_entry(5.0, 10)]
    assert entry_aggregator.average_fat(skewed) == pytest.approx(3.5)


def test_empty_input():
    assert entry_aggregator.average_fat([]) == 0
    assert entry_aggregator.total_quantity([]) == 0
    assert entry_aggregator.total_amount([]) == 0
    assert entry_aggregator.summarize([]) == EntrySummary()


def test_total_amount_uses_stored_amounts():
    entry = make_entry(4.5, 10)
    # frozen at capture: a later price change must not show up in totals
    repriced = dataclasses.replace(entry, rate_per_liter=99.0)
    assert entry_aggregator.total_amount([repriced]) == 400.00


def test_aggregates_ignore_order():
    rnd = random.Random(7)
    entries = [
        make_entry(round(rnd.uniform(2.5, 7.0), 1), round(rnd.uniform(0.5, 25), 2),
                   rnd.choice([Session.MORNING, Session.EVENING]),
                   farmer_id=rnd.randint(1, 5))
        for _ in range(200)
    ]
    expected = entry_aggregator.summarize(entries)
    for _ in range(5):
        rnd.shuffle(entries)
        assert entry_aggregator.summarize(entries) == expected
    assert entry_aggregator.summarize(reversed(entries)) == expected


def test_group_by_date_newest_first():
    entries = [
        make_entry(4.0, 1, day=date(2026, 1, 2)),
        make_entry(4.0, 2, day=date(2026, 1, 5)),
        make_entry(4.0, 3, day=date(2026, 1, 2)),
    ]
    groups = entry_aggregator.group_by_date(entries)
    assert list(groups) == [date(2026, 1, 5), date(2026, 1, 2)]
    assert [e.quantity_liters for e in groups[date(2026, 1, 2)]] == [1, 3]


def test_group_by_farmer_ordered_by_name():
    entries = [
        make_entry(4.0, 1, farmer_id=2, farmer_name="suresh"),
        make_entry(4.0, 2, farmer_id=1, farmer_name="Anil"),
        make_entry(4.0, 3, farmer_id=2, farmer_name="suresh"),
    ]
    groups = entry_aggregator.group_by_farmer(entries)
    assert list(groups) == [1, 2]
    assert len(groups[2]) == 2


def test_daily_stats_only_counts_that_day():
    today = date(2026, 3, 10)
    entries = [
        make_entry(4.5, 10, Session.MORNING, day=today, farmer_id=1),
        make_entry(3.5, 5, Session.EVENING, day=today, farmer_id=2),
        make_entry(4.5, 50, Session.MORNING, day=date(2026, 3, 9)),
    ]
    stats = entry_aggregator.daily_stats(today, entries, farmers_count=12)
    assert stats.day == today
    assert stats.farmers_count == 12
    assert stats.summary.total_quantity == 15
    assert stats.summary.total_amount == 550
    assert stats.summary.morning_quantity == 10
    assert stats.summary.evening_quantity == 5
    assert stats.summary.farmer_count == 2
