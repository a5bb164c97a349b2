"""
Acquisition-Time Determination

Assigns the initial standard remuneration when an employee joins, using the
join month's pay or, failing that, the following month's.
"""

import logging
from decimal import Decimal
from typing import Dict, Optional, Sequence

from shaho.models import AcquisitionResult, CompensationEntry, EmployeeProfile, GradeTableRow
from shaho.rules.grade_table import find_grade
from shaho.rules.rounding import round_to_thousand

logger = logging.getLogger(__name__)


def _usable_total(entry: Optional[CompensationEntry]) -> Optional[Decimal]:
    if entry is None or entry.total_amount is None or entry.total_amount <= 0:
        return None
    return entry.total_amount


def determine_acquisition_grade(
    employee: EmployeeProfile,
    compensation_by_month: Dict[int, CompensationEntry],
    grade_table: Sequence[GradeTableRow],
    year: Optional[int] = None,
) -> AcquisitionResult:
    """
    Determine the acquisition-time grade and record it on the employee.

    Args:
        employee: Joining employee; acquisition fields are written only if unset
        compensation_by_month: Entries for the join year keyed by month
        grade_table: Grade table for the join year
        year: Target year; when given and different from the join year,
            the determination is skipped

    Returns:
        AcquisitionResult; grade 0 means unresolved
    """
    join_year = employee.join_date.year
    join_month = employee.join_date.month
    unresolved = AcquisitionResult(standard_value=Decimal('0'), grade=0, used_month=None)

    if year is not None and year != join_year:
        unresolved.reasons.append(
            f"Joined in {join_year}; no acquisition-time determination for {year}"
        )
        return unresolved

    used_month = None
    base = _usable_total(compensation_by_month.get(join_month))
    if base is not None:
        used_month = join_month
        unresolved.reasons.append(f"Using join month {join_month} compensation")
    else:
        next_month = join_month + 1
        if next_month <= 12:
            base = _usable_total(compensation_by_month.get(next_month))
        if base is not None:
            used_month = next_month
            unresolved.reasons.append(
                f"No compensation in join month {join_month}; using month {next_month}"
            )

    if base is None:
        unresolved.reasons.append(
            "No compensation recorded in the join month or the following month; "
            "acquisition grade cannot be determined"
        )
        logger.warning("Acquisition grade unresolved for %s", employee.employee_id)
        return unresolved

    rounded = round_to_thousand(base)
    grade = find_grade(grade_table, rounded)
    if grade is None:
        unresolved.used_month = used_month
        unresolved.reasons.append(f"No grade band contains {rounded:,.0f}")
        logger.warning("Acquisition grade not found for %s (%s)", employee.employee_id, rounded)
        return unresolved

    result = AcquisitionResult(
        standard_value=grade.standard_value,
        grade=grade.rank,
        used_month=used_month,
        reasons=unresolved.reasons,
    )
    result.reasons.append(
        f"Base {base:,.0f} rounded to {rounded:,.0f}: grade {grade.rank} "
        f"(standard {grade.standard_value:,.0f})"
    )

    result.persisted = employee.record_acquisition(grade.rank, grade.standard_value)
    if result.persisted:
        logger.info("Recorded acquisition grade %s for %s", grade.rank, employee.employee_id)
    else:
        result.reasons.append(
            f"Acquisition grade {employee.acquisition_grade} already recorded; not overwritten"
        )
        logger.info("Kept existing acquisition grade for %s", employee.employee_id)
    return result
