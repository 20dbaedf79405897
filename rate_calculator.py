"""
Fat-linked milk pricing.

Base rate is Rs.30 per liter at 3.5% fat, moving Rs.5 for every 0.5% of
fat above or below that.
"""

import math

BASE_FAT = 3.5
BASE_RATE = 30
RATE_INCREASE = 5
FAT_STEP = 0.5


def round2(value):
    """Round to 2 decimals, halves going up (towards +infinity).

    NaN, infinities and values too large to scale are returned unchanged.
    """
    scaled = value * 100
    if not math.isfinite(scaled):
        return value
    return math.floor(scaled + 0.5) / 100



def compute_rate(fat_percentage):
    """Price per liter for a measured fat percentage. Out-of-range fat is not clamped."""
    fat_diff = (fat_percentage - BASE_FAT) / FAT_STEP
    return round2(BASE_RATE + fat_diff * RATE_INCREASE)


def entry_amount(rate_per_liter, quantity_liters):
    return round2(rate_per_liter * quantity_liters)
