"""
Monthly Premium Calculator

Splits health, care and pension premiums for one month between employee
and employer.
"""

import logging
from decimal import Decimal
from typing import Optional, Sequence

from shaho.models import AgeFlags, CARE_TYPE2, EmployeeProfile, ExemptionStatus, GradeTableRow, MonthlyPremium, RateSet
from shaho.rules.grade_table import find_grade
from shaho.rules.rounding import floor_to_ten, round_to_yen

logger = logging.getLogger(__name__)

BEFORE_JOIN = 'before_join'
JOIN_MONTH = 'join_month'
ENROLLED = 'enrolled'
AFTER_RETIREMENT = 'after_retirement'

ZERO = Decimal('0')


def enrollment_status(employee: EmployeeProfile, year: int, month: int) -> str:
    """
    Enrollment state of the month.

    Health and care are charged from the join month, pension from the month
    after joining. Months after the retirement month carry no premiums.
    """
    target = (year, month)
    joined = (employee.join_date.year, employee.join_date.month)
    if target < joined:
        return BEFORE_JOIN
    retire = employee.retire_date
    if retire is not None and target > (retire.year, retire.month):
        return AFTER_RETIREMENT
    if target == joined:
        return JOIN_MONTH
    return ENROLLED


def split_half_floor(base: Decimal, employee_rate: Decimal, employer_rate: Decimal):
    """Half of base x rates, each share floored to 10 yen on its own."""
    half = base * (employee_rate + employer_rate) / 2
    return floor_to_ten(half), floor_to_ten(half)


def split_pension(base: Decimal, employee_rate: Decimal, employer_rate: Decimal):
    """
    Pension split by the remainder method.

    Returns:
        Tuple of (employee, employer, total) where employee + employer == total
    """
    total = round_to_yen(base * (employee_rate + employer_rate))
    employee = floor_to_ten(total / 2)
    return employee, total - employee, total


def calculate_monthly_premiums(
    standard_value: Optional[Decimal],
    exemption: ExemptionStatus,
    age_flags: AgeFlags,
    rate_set: Optional[RateSet],
    month_total: Optional[Decimal] = None,
    grade_table: Optional[Sequence[GradeTableRow]] = None,
    enrollment: Optional[str] = None,
) -> MonthlyPremium:
    """
    Calculate one month's premiums.

    Args:
        standard_value: Standard remuneration in effect; None when no grade
            has ever been assigned
        exemption: Leave exemption and retirement-month flags
        age_flags: Age thresholds for the month
        rate_set: Rates for the month, or None if none is configured
        month_total: Current month's total pay, used only when standard_value is None
        grade_table: Table for the provisional lookup
        enrollment: Result of enrollment_status(); None means enrolled

    Returns:
        MonthlyPremium with zeros and reasons for every suppressed component
    """
    premium = MonthlyPremium(standard_value=standard_value)

    if enrollment == BEFORE_JOIN:
        premium.reasons.append("Not yet enrolled this month")
        return premium
    if enrollment == AFTER_RETIREMENT:
        premium.reasons.append("Coverage ended before this month")
        return premium

    if standard_value is None:
        grade = None
        if month_total is not None and grade_table:
            grade = find_grade(grade_table, month_total)
        if grade is None:
            premium.reasons.append("No standard remuneration assigned and none could be looked up")
            return premium
        standard_value = grade.standard_value
        premium.standard_value = standard_value
        premium.provisional = True
        premium.reasons.append(
            f"No grade assigned yet; grade table consulted provisionally with this month's "
            f"total {month_total:,.0f} (standard {standard_value:,.0f})"
        )

    if rate_set is None:
        premium.reasons.append("No rate set configured for this month")
        return premium

    if exemption.exempt:
        premium.reasons.extend(exemption.reasons)
        return premium

    health_base = standard_value
    care_base = standard_value
    pension_base = standard_value

    if age_flags.no_health:
        health_base = care_base = ZERO
        premium.reasons.append("Health and care premiums not charged from age 75")
    if exemption.not_present_at_month_end:
        health_base = care_base = ZERO
        premium.reasons.append("Not enrolled at month end; health and care premiums not charged")
    if age_flags.no_pension:
        pension_base = ZERO
        premium.reasons.append("Pension premium not charged from age 70")
    if enrollment == JOIN_MONTH:
        pension_base = ZERO
        premium.reasons.append("Pension premium starts the month after joining")
    if age_flags.care_type != CARE_TYPE2:
        care_base = ZERO

    premium.health_employee, premium.health_employer = split_half_floor(
        health_base, rate_set.health_employee_rate, rate_set.health_employer_rate)
    premium.care_employee, premium.care_employer = split_half_floor(
        care_base, rate_set.care_employee_rate, rate_set.care_employer_rate)
    premium.pension_employee, premium.pension_employer, premium.pension_total = split_pension(
        pension_base, rate_set.pension_employee_rate, rate_set.pension_employer_rate)

    logger.debug("Monthly premium on %s: %s", standard_value, premium)
    return premium
