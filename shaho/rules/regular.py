"""
Regular Determination (annual)

Averages April-June compensation to refresh the standard remuneration,
effective from September.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from shaho.models import CompensationEntry, EmployeeProfile, GradeTableRow, RegularDetermination
from shaho.rules.grade_table import find_grade
from shaho.rules.rounding import round_to_thousand

logger = logging.getLogger(__name__)

WINDOW_MONTHS = (4, 5, 6)
EFFECTIVE_MONTH = 9
MIN_BASE_DAYS = 17
MAX_ABSENCE_RATIO = Decimal('0.15')


def exclusion_reason(month: int, entry: Optional[CompensationEntry]) -> Optional[str]:
    """Why a window month cannot be averaged, or None when it is usable."""
    if entry is None or not entry.total_amount:
        return f"Month {month}: no compensation recorded"
    if entry.payment_base_days < MIN_BASE_DAYS:
        return f"Month {month}: payment base days {entry.payment_base_days} below {MIN_BASE_DAYS}"
    if entry.fixed_amount > 0 and entry.absence_deduction > entry.fixed_amount * MAX_ABSENCE_RATIO:
        return (
            f"Month {month}: absence deduction {entry.absence_deduction:,.0f} exceeds 15% "
            f"of fixed pay {entry.fixed_amount:,.0f}"
        )
    return None


def _not_subject_reason(employee: EmployeeProfile, year: int) -> Optional[str]:
    if employee.join_date >= date(year, 6, 1):
        return f"Joined on {employee.join_date.isoformat()}; not subject to the {year} regular determination"
    if employee.retire_date is not None and employee.retire_date <= date(year, 6, 30):
        return f"Retired on {employee.retire_date.isoformat()}; not subject to the {year} regular determination"
    return None


def _retain(result: RegularDetermination, grade_table: Sequence[GradeTableRow],
            current_standard: Optional[Decimal], why: str) -> RegularDetermination:
    if current_standard is None:
        result.reasons.append(f"{why}; no current standard remuneration, grade undetermined")
        logger.warning("Regular determination undetermined for %s", result.employee_id)
        return result

    result.retained = True
    result.standard_value = current_standard
    grade = find_grade(grade_table, current_standard)
    result.grade = grade.rank if grade else 0
    result.reasons.append(f"{why}; current standard remuneration {current_standard:,.0f} retained")
    return result


def determine_regular_grade(
    employee_id: str,
    compensation_by_month: Dict[int, CompensationEntry],
    grade_table: Sequence[GradeTableRow],
    current_standard: Optional[Decimal] = None,
    year: Optional[int] = None,
    employee: Optional[EmployeeProfile] = None,
) -> RegularDetermination:
    """
    Run the annual regular determination for one employee.

    Months 4-6 are averaged after excluding any month with fewer than 17
    payment base days or an absence deduction above 15% of fixed pay.
    With no usable month the current standard is retained.

    Args:
        employee_id: Employee identifier
        compensation_by_month: Entries for the target year keyed by month
        grade_table: Grade table for the target year
        current_standard: Standard remuneration in effect before September
        year: Target year, used for the effective date and subject checks
        employee: When given with year, employees who joined from June 1 or
            retired by June 30 are not subject

    Returns:
        RegularDetermination effective from September
    """
    result = RegularDetermination(
        employee_id=employee_id,
        average_value=None,
        excluded_months=[],
        grade=0,
        standard_value=Decimal('0'),
        effective_from_year=year,
        effective_from_month=EFFECTIVE_MONTH,
    )

    if employee is not None and year is not None:
        why = _not_subject_reason(employee, year)
        if why:
            return _retain(result, grade_table, current_standard, why)

    values: List[Decimal] = []
    for month in WINDOW_MONTHS:
        entry = compensation_by_month.get(month)
        reason = exclusion_reason(month, entry)
        if reason:
            result.excluded_months.append(month)
            result.excluded_reasons.append(reason)
            result.reasons.append(reason)
            continue
        result.used_months.append(month)
        values.append(entry.total_amount)

    if not values:
        return _retain(result, grade_table, current_standard, "No usable month in April-June")

    if len(values) == 1:
        average = values[0]
        result.reasons.append(f"Only month {result.used_months[0]} usable; its total is used")
    else:
        average = sum(values, Decimal('0')) / len(values)
        months = ", ".join(str(m) for m in result.used_months)
        result.reasons.append(f"Average of months {months}: {average:,.2f}")

    result.average_value = round_to_thousand(average)
    grade = find_grade(grade_table, result.average_value)
    if grade is None:
        result.reasons.append(f"No grade band contains {result.average_value:,.0f}")
        logger.warning("Regular determination grade not found for %s", employee_id)
        return result

    result.grade = grade.rank
    result.standard_value = grade.standard_value
    result.reasons.append(
        f"Grade {grade.rank} (standard {grade.standard_value:,.0f}) effective from September"
    )
    logger.debug("Regular determination for %s: %s", employee_id, result)
    return result
