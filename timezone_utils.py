#!/usr/bin/env python3
"""
Milk Collection Center timezone utilities for IST (Indian Standard Time)
"""

from calendar import monthrange
from datetime import date, datetime
import pytz

# Timezone definitions
IST = pytz.timezone('Asia/Kolkata')

def get_today_ist():
    """Get today's date (IST)"""
    return datetime.now(IST).date()

def get_ist_datetime():
    """Get current datetime in IST"""
    return datetime.now(IST)

def get_last_day_of_month(year, month):
    """Get the last day of a month"""
    return monthrange(year, month)[1]

def month_bounds(year, month):
    """First and last calendar day of a month"""
    return date(year, month, 1), date(year, month, get_last_day_of_month(year, month))

def parse_date(value, default=None):
    """Parse YYYY-MM-DD. Empty value gives `default`; bad value raises ValueError."""
    if not value:
        return default
    if isinstance(value, date):
        return value
    return datetime.strptime(str(value).strip(), '%Y-%m-%d').date()
