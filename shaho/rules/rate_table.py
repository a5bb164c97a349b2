"""
Premium rate table lookup, keyed by year, region and effective-from month.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Optional

from shaho.models import RateSet

logger = logging.getLogger(__name__)


def find_rate_set(rate_sets: Iterable[RateSet], year: int, region: str, month: int) -> Optional[RateSet]:
    """Return the most recent rate set effective on or before the month, or None."""
    best = None
    for rate_set in rate_sets:
        if rate_set.year != year or rate_set.region != region:
            continue
        if rate_set.effective_from_month > month:
            continue
        if best is None or rate_set.effective_from_month > best.effective_from_month:
            best = rate_set
    if best is None:
        logger.warning("No rate set for %s/%s month %s", year, region, month)
    return best


def _rate(entry: Dict, scheme: str, party: str) -> Decimal:
    try:
        return Decimal(str(entry[scheme][party]))
    except (KeyError, TypeError):
        raise ValueError(f"rates entry must contain {scheme}.{party}")
    except InvalidOperation:
        raise ValueError(f"{scheme}.{party} must be a valid number")


def rate_sets_from_config(config: Dict) -> List[RateSet]:
    """
    Build RateSet objects from the 'rates' section of the YAML config.

    Raises:
        ValueError: If an entry is missing a field or holds a bad value
    """
    rate_sets = []
    for entry in config.get('rates', []):
        try:
            year = int(entry['year'])
            region = str(entry['region'])
            effective_from_month = int(entry.get('effective_from_month', 1))
        except (KeyError, TypeError, ValueError):
            raise ValueError("rates entry must contain numeric year, region and effective_from_month")
        if not 1 <= effective_from_month <= 12:
            raise ValueError("effective_from_month must be between 1 and 12")

        rate_sets.append(RateSet(
            health_employee_rate=_rate(entry, 'health', 'employee'),
            health_employer_rate=_rate(entry, 'health', 'employer'),
            care_employee_rate=_rate(entry, 'care', 'employee'),
            care_employer_rate=_rate(entry, 'care', 'employer'),
            pension_employee_rate=_rate(entry, 'pension', 'employee'),
            pension_employer_rate=_rate(entry, 'pension', 'employer'),
            year=year,
            region=region,
            effective_from_month=effective_from_month,
        ))
    return rate_sets
