"""
Revision Detection (event-driven)

Detects fixed-pay changes and decides whether the three-month average
after the change moves the employee at least two grades, in which case the
standard remuneration is revised from the fourth month.
"""

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from shaho.models import CompensationEntry, EmployeeProfile, GradeTableRow, RevisionCandidate
from shaho.rules.grade_table import find_grade
from shaho.rules.rounding import floor_to_yen, round_to_thousand

logger = logging.getLogger(__name__)

MIN_BASE_DAYS = 17
MIN_GRADE_DIFFERENCE = 2
GRACE_MONTHS = 3
WINDOW_LENGTH = 3


def _usable(entry: Optional[CompensationEntry]) -> bool:
    return entry is not None and entry.payment_base_days >= MIN_BASE_DAYS


def previous_usable_fixed(compensation_by_month: Dict[int, CompensationEntry], month: int) -> Optional[Decimal]:
    """Fixed pay of the latest month before `month` with at least 17 payment base days."""
    for earlier in range(month - 1, 0, -1):
        entry = compensation_by_month.get(earlier)
        if _usable(entry):
            return entry.fixed_amount
    return None


def is_fixed_pay_change(compensation_by_month: Dict[int, CompensationEntry], month: int) -> bool:
    """
    True when fixed pay in `month` differs from the last usable month.

    Months with fewer than 17 payment base days neither change nor serve as
    the comparison value. A previous value of zero never counts.
    """
    entry = compensation_by_month.get(month)
    if not _usable(entry):
        return False
    previous_fixed = previous_usable_fixed(compensation_by_month, month)
    return previous_fixed is not None and previous_fixed > 0 and entry.fixed_amount != previous_fixed


def detect_fixed_pay_changes(compensation_by_month: Dict[int, CompensationEntry]) -> List[int]:
    """Months 1-12 in which fixed pay changed."""
    return [month for month in range(1, 13) if is_fixed_pay_change(compensation_by_month, month)]


def apply_start(year: Optional[int], change_month: int):
    """(year, month) from which a change in change_month takes effect."""
    month = change_month + WINDOW_LENGTH
    if month > 12:
        return (year + 1 if year is not None else None), month - 12
    return year, month


def detect_revision(
    employee_id: str,
    change_month: int,
    compensation_by_month: Dict[int, CompensationEntry],
    grade_table: Sequence[GradeTableRow],
    current_grade: Optional[int],
    join_date: Optional[date] = None,
    year: Optional[int] = None,
) -> RevisionCandidate:
    """
    Evaluate a fixed-pay change in change_month.

    Args:
        employee_id: Employee identifier
        change_month: Month in which fixed pay changed
        compensation_by_month: Entries for the year keyed by month
        grade_table: Grade table for the year
        current_grade: Grade in effect at the change
        join_date: Join date, for the acquisition grace period
        year: Calendar year of compensation_by_month

    Returns:
        RevisionCandidate; every outcome leaves a reason
    """
    candidate = RevisionCandidate(
        employee_id=employee_id,
        change_month=change_month,
        current_grade=current_grade,
    )

    if join_date is not None and year is not None and join_date.year == year:
        months_after_join = change_month - join_date.month
        if 0 <= months_after_join <= GRACE_MONTHS:
            candidate.reasons.append(
                f"Change in month {change_month} is within {GRACE_MONTHS} months of joining "
                f"in month {join_date.month}; covered by the acquisition-time determination"
            )
            return candidate

    window = list(range(change_month, change_month + WINDOW_LENGTH))
    if window[-1] > 12:
        candidate.reasons.append(
            f"Change in month {change_month}: months {window[0]}-{window[-1]} run past December; "
            f"cannot be evaluated this year"
        )
        return candidate

    short_months = []
    for month in window:
        entry = compensation_by_month.get(month)
        days = entry.payment_base_days if entry is not None else 0
        if days < MIN_BASE_DAYS:
            short_months.append(f"month {month} ({days} days)")
    if short_months:
        candidate.reasons.append(
            f"Payment base days below {MIN_BASE_DAYS} in " + ", ".join(short_months)
            + "; revision window disqualified"
        )
        return candidate

    total = sum((compensation_by_month[m].total_amount for m in window), Decimal('0'))
    average = round_to_thousand(floor_to_yen(total / WINDOW_LENGTH))
    candidate.average = average

    grade = find_grade(grade_table, average)
    if grade is None:
        candidate.reasons.append(f"No grade band contains the average {average:,.0f}")
        return candidate
    candidate.new_grade = grade.rank
    candidate.new_standard = grade.standard_value

    if current_grade is None:
        candidate.reasons.append("No current grade to compare against")
        return candidate

    candidate.grade_difference = abs(grade.rank - current_grade)
    candidate.apply_start_year, candidate.apply_start_month = apply_start(year, change_month)

    if candidate.grade_difference < MIN_GRADE_DIFFERENCE:
        candidate.reasons.append(
            f"Grade {current_grade} -> {grade.rank} differs by {candidate.grade_difference}; "
            f"at least {MIN_GRADE_DIFFERENCE} required"
        )
        return candidate

    candidate.eligible = True
    candidate.reasons.append(
        f"Average {average:,.0f} over months {window[0]}-{window[-1]}: grade {current_grade} -> "
        f"{grade.rank}; revised from month {candidate.apply_start_month}"
    )
    logger.debug("Revision eligible for %s: %s", employee_id, candidate)
    return candidate


def detect_revisions(
    employee: EmployeeProfile,
    compensation_by_month: Dict[int, CompensationEntry],
    grade_table: Sequence[GradeTableRow],
    current_grade: Optional[int],
    year: int,
) -> List[RevisionCandidate]:
    """Evaluate every fixed-pay change found in the year."""
    return [
        detect_revision(employee.employee_id, month, compensation_by_month, grade_table,
                        current_grade, employee.join_date, year)
        for month in detect_fixed_pay_changes(compensation_by_month)
    ]


def return_from_leave_date(employee: EmployeeProfile) -> Optional[date]:
    """
    First working day after leave, if known.

    An explicit return date wins. Otherwise the day after childcare ends is
    used before the day after maternity ends, since childcare leave follows
    maternity leave when both are recorded.
    """
    if employee.return_from_leave_date is not None:
        return employee.return_from_leave_date
    if employee.childcare_end is not None:
        return employee.childcare_end + timedelta(days=1)
    if employee.maternity_end is not None:
        return employee.maternity_end + timedelta(days=1)
    return None


def detect_return_from_leave_revisions(
    employee: EmployeeProfile,
    compensation_by_month: Dict[int, CompensationEntry],
    grade_table: Sequence[GradeTableRow],
    current_grade: Optional[int],
    year: int,
) -> List[RevisionCandidate]:
    """
    Scan the return month and the next two months for a fixed-pay change.

    Each month goes through the same change test as detect_fixed_pay_changes,
    so unpaid leave months are passed over when finding the pay before leave.
    A change found there is evaluated like any other revision.
    """
    returned = return_from_leave_date(employee)
    if returned is None or returned.year != year:
        return []

    candidates = []
    for month in range(returned.month, min(returned.month + WINDOW_LENGTH, 13)):
        if not is_fixed_pay_change(compensation_by_month, month):
            continue
        candidate = detect_revision(employee.employee_id, month, compensation_by_month,
                                    grade_table, current_grade, employee.join_date, year)
        candidate.reasons.insert(0, f"Return from leave on {returned.isoformat()}")
        candidates.append(candidate)
    return candidates
