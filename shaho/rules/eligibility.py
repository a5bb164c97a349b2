"""
Exemption and Age Determination

Leave exemptions (maternity and childcare), retirement-month presence and
the age thresholds that switch health, pension and care premiums off.
"""

import calendar
import logging
from datetime import date, timedelta
from typing import Optional, Tuple

from shaho.models import (
    AgeFlags,
    CARE_NONE,
    CARE_TYPE1,
    CARE_TYPE2,
    EmployeeProfile,
    ExemptionStatus,
)

logger = logging.getLogger(__name__)

MATERNITY = 'maternity'
CHILDCARE = 'childcare'

MIN_CHILDCARE_DAYS = 14

CARE_PREMIUM_AGE = 40
CARE_TYPE1_AGE = 65
PENSION_END_AGE = 70
HEALTH_END_AGE = 75

MATERNITY_REASON = "Maternity leave (health insurance and pension employee/employer shares exempt)"
CHILDCARE_REASON = "Childcare leave (health insurance and pension employee/employer shares exempt)"


def last_day_of_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def _leave_end(end: Optional[date], expected_end: Optional[date]) -> Optional[date]:
    return end if end is not None else expected_end


def _in_period(reference: date, start: Optional[date], end: Optional[date]) -> bool:
    if start is None or reference < start:
        return False
    return end is None or reference <= end


def _childcare_too_short(start: date, end: Optional[date]) -> bool:
    if end is None:
        return False
    return (end - start).days + 1 < MIN_CHILDCARE_DAYS


def _childcare_denials(employee: EmployeeProfile) -> list:
    denials = []
    if not employee.childcare_notification_submitted:
        denials.append("childcare leave notification has not been submitted")
    if not employee.childcare_living_together:
        denials.append("the child is not living with the employee")
    return denials


def is_not_present_at_month_end(employee: EmployeeProfile, reference_date: date) -> bool:
    """True when the employee retires in the reference month before its last day."""
    retire = employee.retire_date
    if retire is None:
        return False
    if (retire.year, retire.month) != (reference_date.year, reference_date.month):
        return False
    return retire.day < last_day_of_month(retire.year, retire.month)


def _retired_before(employee: EmployeeProfile, year: int, month: int) -> bool:
    retire = employee.retire_date
    return retire is not None and (year, month) > (retire.year, retire.month)


def _add_retirement_flags(status: ExemptionStatus, employee: EmployeeProfile, reference_date: date) -> None:
    if is_not_present_at_month_end(employee, reference_date):
        status.not_present_at_month_end = True
        status.reasons.append(
            f"Retired on {employee.retire_date.isoformat()} before month end; "
            f"health and care premiums are not charged for this month"
        )
    if _retired_before(employee, reference_date.year, reference_date.month):
        status.retired_before_month = True
        status.reasons.append(
            f"Coverage ended with retirement on {employee.retire_date.isoformat()}"
        )


def determine_exemption(employee: EmployeeProfile, reference_date: date) -> ExemptionStatus:
    """
    Determine leave exemption and retirement-month presence on a given date.

    Maternity leave is checked first. Childcare leave only exempts when the
    notification was submitted and the child lives with the employee; when
    either is missing the exemption is denied and the reason says why.

    Args:
        employee: Employee profile with leave periods
        reference_date: Date to evaluate (time of day is not considered)

    Returns:
        ExemptionStatus with reasons in evaluation order
    """
    status = ExemptionStatus()

    maternity_end = _leave_end(employee.maternity_end, employee.maternity_expected_end)
    childcare_end = _leave_end(employee.childcare_end, employee.childcare_expected_end)

    if _in_period(reference_date, employee.maternity_start, maternity_end):
        status.exempt = True
        status.kind = MATERNITY
        status.reasons.append(MATERNITY_REASON)
    elif _in_period(reference_date, employee.childcare_start, childcare_end):
        denials = _childcare_denials(employee)
        if denials:
            status.reasons.append(
                "Childcare leave exemption denied: " + "; ".join(denials)
            )
        elif _childcare_too_short(employee.childcare_start, childcare_end):
            status.reasons.append(
                f"Childcare leave exemption denied: leave is shorter than {MIN_CHILDCARE_DAYS} days"
            )
        else:
            status.exempt = True
            status.kind = CHILDCARE
            status.reasons.append(CHILDCARE_REASON)

    _add_retirement_flags(status, employee, reference_date)
    logger.debug("Exemption for %s on %s: %s", employee.employee_id, reference_date, status)
    return status


def _month_in_leave(year: int, month: int, start: date, end: Optional[date], same_month_ok: bool) -> bool:
    """
    Month-based leave rule: exempt from the start month up to the month
    before the one containing the day after the leave ends.
    """
    target = (year, month)
    if target < (start.year, start.month):
        return False
    if end is None:
        return True
    if target < (end.year, end.month):
        return True
    if target == (end.year, end.month):
        if end.day == last_day_of_month(end.year, end.month):
            return True
        # a leave that begins and ends inside the same month
        return same_month_ok and (start.year, start.month) == target
    return False


def is_exempt_month(employee: EmployeeProfile, year: int, month: int) -> Optional[str]:
    """
    Return 'maternity' or 'childcare' when the calendar month is exempt.

    The start month is exempt, the end month only when leave runs to its
    last day. Childcare additionally needs both flags and at least 14 days.
    """
    if employee.maternity_start is not None:
        maternity_end = _leave_end(employee.maternity_end, employee.maternity_expected_end)
        if _month_in_leave(year, month, employee.maternity_start, maternity_end, False):
            return MATERNITY

    if employee.childcare_start is not None:
        childcare_end = _leave_end(employee.childcare_end, employee.childcare_expected_end)
        if _childcare_denials(employee) or _childcare_too_short(employee.childcare_start, childcare_end):
            return None
        if _month_in_leave(year, month, employee.childcare_start, childcare_end, True):
            return CHILDCARE

    return None


def determine_month_exemption(employee: EmployeeProfile, year: int, month: int) -> ExemptionStatus:
    """Month-based counterpart of determine_exemption for monthly premiums."""
    status = ExemptionStatus()
    kind = is_exempt_month(employee, year, month)
    if kind == MATERNITY:
        status.exempt = True
        status.kind = kind
        status.reasons.append(MATERNITY_REASON)
    elif kind == CHILDCARE:
        status.exempt = True
        status.kind = kind
        status.reasons.append(CHILDCARE_REASON)
    elif employee.childcare_start is not None:
        # surface why an overlapping childcare leave did not exempt the month
        childcare_end = _leave_end(employee.childcare_end, employee.childcare_expected_end)
        if _month_in_leave(year, month, employee.childcare_start, childcare_end, True):
            denials = _childcare_denials(employee)
            if denials:
                status.reasons.append("Childcare leave exemption denied: " + "; ".join(denials))
            else:
                status.reasons.append(
                    f"Childcare leave exemption denied: leave is shorter than {MIN_CHILDCARE_DAYS} days"
                )

    _add_retirement_flags(status, employee, date(year, month, 1))
    return status


def threshold_effective_month(birth_date: date, age: int) -> Tuple[int, int]:
    """
    Month from which an age threshold applies.

    The age is reached on the day before the birthday, so a birthday on the
    1st moves the threshold into the previous month.
    """
    year = birth_date.year + age
    if birth_date.month == 2 and birth_date.day == 29 and not calendar.isleap(year):
        day_before = date(year, 2, 28)
    else:
        day_before = date(year, birth_date.month, birth_date.day) - timedelta(days=1)
    return day_before.year, day_before.month


def age_on(birth_date: date, reference_date: date) -> int:
    """Completed years of age on the reference date."""
    age = reference_date.year - birth_date.year
    if (reference_date.month, reference_date.day) < (birth_date.month, birth_date.day):
        age -= 1
    return age


def _reached(birth_date: date, age: int, reference_date: date) -> bool:
    return (reference_date.year, reference_date.month) >= threshold_effective_month(birth_date, age)


def determine_age_flags(birth_date: date, reference_date: date) -> AgeFlags:
    """
    Compute the age-based premium flags for the reference month.

    Args:
        birth_date: Employee's date of birth
        reference_date: Any day in the month being evaluated

    Returns:
        AgeFlags with no_health (75+), no_pension (70+) and care_type
    """
    flags = AgeFlags(age=age_on(birth_date, reference_date))

    if _reached(birth_date, HEALTH_END_AGE, reference_date):
        flags.no_health = True
        flags.reasons.append("Age 75 reached; moved to the late-stage elderly medical system")
    if _reached(birth_date, PENSION_END_AGE, reference_date):
        flags.no_pension = True
        flags.reasons.append("Age 70 reached; pension premiums no longer apply")

    if flags.no_health:
        flags.care_type = CARE_NONE
    elif _reached(birth_date, CARE_TYPE1_AGE, reference_date):
        flags.care_type = CARE_TYPE1
        flags.reasons.append("Age 65 reached; care insurance premium is not collected through payroll")
    elif _reached(birth_date, CARE_PREMIUM_AGE, reference_date):
        flags.care_type = CARE_TYPE2
    else:
        flags.care_type = CARE_NONE

    return flags
