"""
Quantity derivation from a structured dosing record.

Pure functions, no I/O. The policy throughout is "do not run out": when a SIG
is ambiguous the higher consumption is assumed.
"""

import logging
import math
import re
from dataclasses import replace
from typing import Optional, Tuple

from .schema import (
    AsNeeded,
    DoseRange,
    DosingRecord,
    Frequency,
    FrequencyPeriod,
    MedicationUnit,
    SpecificTimes,
    TimesPerDay,
    TimesPerPeriod,
)

logger = logging.getLogger(__name__)

# Conservative PRN assumption when the SIG gives no daily maximum
DEFAULT_PRN_PER_DAY = 4

# Absorbs float noise such as 0.1 * 3 * 10 = 3.0000000000000004 before ceil
_ROUNDING_DIGITS = 9


def _ceil(value: float) -> int:
    return math.ceil(round(value, _ROUNDING_DIGITS))


def administrations_per_day(frequency: Frequency, prn_default_per_day: int = DEFAULT_PRN_PER_DAY) -> float:
    """
    Convert any frequency variant to administrations per day.

    Raises:
        TypeError: for a frequency variant this function does not know
    """
    if isinstance(frequency, TimesPerDay):
        return frequency.value
    if isinstance(frequency, TimesPerPeriod):
        if frequency.period is FrequencyPeriod.HOUR:
            return 24 / frequency.value
        if frequency.period is FrequencyPeriod.DAY:
            return frequency.value
        if frequency.period is FrequencyPeriod.WEEK:
            return frequency.value / 7
        raise TypeError(f"Unhandled frequency period: {frequency.period!r}")
    if isinstance(frequency, SpecificTimes):
        return len(frequency.times)
    if isinstance(frequency, AsNeeded):
        return frequency.max_per_day or prn_default_per_day
    raise TypeError(f"Unhandled frequency variant: {type(frequency).__name__}")


def effective_days(record: DosingRecord, days_supply: int) -> int:
    """A stated duration shorter than the days supply wins."""
    if record.duration and record.duration < days_supply:
        return record.duration
    return days_supply


def derive_quantity(
    record: DosingRecord,
    days_supply: int,
    prn_default_per_day: int = DEFAULT_PRN_PER_DAY,
) -> int:
    """
    Total dispensing units needed to cover the therapy.

    A non-empty dose schedule fully determines daily consumption. Otherwise
    the maximum of a dose range (never the average) or the single dose is
    multiplied by administrations per day. The result is always rounded up.
    A result <= 0 signals an unusable SIG; this function never raises for it.

    Example:
        1 tablet once daily for 30 days -> 30
    """
    days = effective_days(record, days_supply)

    if record.dose_schedule:
        daily_total = sum(entry.dose * max(entry.occurrences_per_day, 1) for entry in record.dose_schedule)
        return _ceil(daily_total * days)

    dose = record.dose_range.max if record.dose_range else record.dose
    per_day = administrations_per_day(record.frequency, prn_default_per_day)
    return _ceil(dose * per_day * days)


def infer_dose_range_from_text(text: str, unit: MedicationUnit) -> Optional[DoseRange]:
    """
    Find a "<min>-<max> <unit>" pattern such as "1-2 tablets" in free text.

    Returns None when no pattern is present or max < min.
    """
    pattern = re.compile(
        r"(\d+(?:\.\d+)?)\s*-\s*(\d+(?:\.\d+)?)\s*" + re.escape(unit.value) + r"s?",
        re.IGNORECASE,
    )
    match = pattern.search(text or "")
    if not match:
        return None

    low, high = float(match.group(1)), float(match.group(2))
    if high < low:
        return None
    return DoseRange(
        min=int(low) if low.is_integer() else low,
        max=int(high) if high.is_integer() else high,
    )


def enhance_dosing_record(record: DosingRecord, text: Optional[str] = None) -> Tuple[DosingRecord, bool]:
    """
    Fill in a dose range the parser missed.

    Returns:
        (record, inferred) where *inferred* is True when a range was added
    """
    if record.dose_range is not None:
        return record, False

    inferred = infer_dose_range_from_text(text if text is not None else record.original_text, record.unit)
    if inferred is None:
        return record, False

    logger.debug(f"Inferred dose range {inferred.min}-{inferred.max} {record.unit.value} from SIG text")
    return replace(record, dose_range=inferred), True
