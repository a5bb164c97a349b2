"""
Bonus Premium Calculator

Standardizes lump-sum payments, applies the per-payment pension cap and the
fiscal-year health/care cap, and splits the resulting premiums.
"""

import logging
from dataclasses import replace
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from shaho.models import (
    BonusCaps,
    BonusRecord,
    CARE_TYPE2,
    CompensationEntry,
    EmployeeProfile,
    MonthlyPremium,
    RateSet,
)
from shaho.rules.eligibility import determine_age_flags, determine_exemption
from shaho.rules.rounding import floor_to_thousand, round_fifty_sen, to_decimal

logger = logging.getLogger(__name__)

PENSION_CAP_PER_PAYMENT = Decimal('1500000')
HEALTH_CAP_PER_FISCAL_YEAR = Decimal('5730000')
MAX_BONUS_PAYMENTS_PER_YEAR = 3
MIN_REPORTABLE_BONUS = Decimal('1000')
REPORT_DEADLINE_DAYS = 5
MAX_LEAVE_GAP_DAYS = 30

ZERO = Decimal('0')


def standard_bonus(amount) -> Decimal:
    """floor(amount / 1000) * 1000"""
    value = to_decimal(amount)
    if value <= 0:
        return ZERO
    return floor_to_thousand(value)


def fiscal_year_of(day: date) -> int:
    """Fiscal year (April-March) the date belongs to."""
    return day.year if day.month >= 4 else day.year - 1


def apply_bonus_caps(standard, prior_fiscal_year_total=ZERO) -> BonusCaps:
    """
    Apply the pension per-payment cap and the health/care fiscal-year cap.

    Args:
        standard: Standardized bonus amount
        prior_fiscal_year_total: Standardized bonuses already paid in the fiscal year

    Returns:
        BonusCaps with capped amounts and cap flags
    """
    standard = to_decimal(standard)
    headroom = max(ZERO, HEALTH_CAP_PER_FISCAL_YEAR - to_decimal(prior_fiscal_year_total))
    capped_health = min(standard, headroom)
    capped_pension = min(standard, PENSION_CAP_PER_PAYMENT)
    return BonusCaps(
        capped_health=capped_health,
        capped_pension=capped_pension,
        health_cap_applied=capped_health < standard,
        pension_cap_applied=capped_pension < standard,
    )


def _one_year_before(day: date) -> date:
    if day.month == 2 and day.day == 29:
        return date(day.year - 1, 2, 28)
    return date(day.year - 1, day.month, day.day)


def count_trailing_12_months(pay_dates: Iterable[date], pay_date: date) -> int:
    """
    Number of already processed payments within the twelve months ending at pay_date.

    pay_dates holds payments handled before this one, so a payment on the
    same date counts.
    """
    start = _one_year_before(pay_date)
    return sum(1 for d in pay_dates if start < d <= pay_date)


def prior_fiscal_year_total(records: Iterable[BonusRecord], pay_date: date) -> Decimal:
    """
    Standardized bonuses already processed in the same fiscal year, up to and
    including pay_date, excluding reclassified ones.
    """
    fiscal_year = fiscal_year_of(pay_date)
    return sum(
        (r.standard_bonus_amount for r in records
         if not r.reclassified_as_salary
         and r.pay_date <= pay_date
         and fiscal_year_of(r.pay_date) == fiscal_year),
        ZERO,
    )


def fold_bonus_into_compensation(entry: Optional[CompensationEntry], record: BonusRecord) -> CompensationEntry:
    """Return the month's compensation with a reclassified bonus added as variable pay."""
    if entry is None:
        entry = CompensationEntry(month=record.pay_date.month, year=record.pay_date.year)
    return replace(
        entry,
        variable_amount=entry.variable_amount + record.standard_bonus_amount,
        total_amount=entry.total_amount + record.standard_bonus_amount,
    )


def _split_half(base: Decimal, employee_rate: Decimal, employer_rate: Decimal):
    half = base * (employee_rate + employer_rate) / 2
    return round_fifty_sen(half), round_fifty_sen(half)


def _split_pension(base: Decimal, employee_rate: Decimal, employer_rate: Decimal):
    total = round_fifty_sen(base * (employee_rate + employer_rate))
    employee = round_fifty_sen(total / 2)
    return employee, total - employee, total


def validate_bonus(amount: Decimal, employee: EmployeeProfile, pay_date: date, record: BonusRecord) -> None:
    """Append error and warning messages for an implausible payment."""
    if amount < 0:
        record.error_messages.append("Bonus amount must be non-negative")
    if pay_date < employee.join_date:
        record.error_messages.append(
            f"Pay date {pay_date.isoformat()} is before the join date {employee.join_date.isoformat()}"
        )
    if employee.retire_date is not None and pay_date > employee.retire_date:
        record.error_messages.append(
            f"Pay date {pay_date.isoformat()} is after the retire date {employee.retire_date.isoformat()}"
        )

    maternity_end = employee.maternity_end or employee.maternity_expected_end
    if maternity_end is not None and employee.childcare_start is not None:
        gap = (employee.childcare_start - maternity_end).days
        if gap > MAX_LEAVE_GAP_DAYS:
            record.warning_messages.append(
                f"Childcare leave starts {gap} days after maternity leave ends"
            )
    if employee.childcare_start is not None:
        if not employee.childcare_notification_submitted:
            record.warning_messages.append("Childcare leave recorded without a submitted notification")
        if not employee.childcare_living_together:
            record.warning_messages.append("Childcare leave recorded but the child is not living with the employee")


def _report_requirement(record: BonusRecord, not_present: bool, leave_exempt: bool, no_health: bool) -> None:
    if record.reclassified_as_salary:
        record.report_reason = "Reclassified as salary; no bonus payment report"
    elif record.standard_bonus_amount < MIN_REPORTABLE_BONUS:
        record.report_reason = "Standardized bonus is below 1,000; no bonus payment report"
    elif not_present:
        record.report_reason = "Retired before month end; no bonus payment report"
    elif leave_exempt:
        record.report_reason = "Paid during exempt leave; no bonus payment report"
    elif no_health:
        record.report_reason = "Age 75 or older; no bonus payment report"
    else:
        record.report_required = True
        record.report_deadline = record.pay_date + timedelta(days=REPORT_DEADLINE_DAYS)
        record.report_reason = (
            f"Bonus payment report due by {record.report_deadline.isoformat()}"
        )


def calculate_bonus_premiums(
    amount,
    employee: EmployeeProfile,
    pay_date: date,
    prior_fiscal_year_bonus_total,
    trailing_12_month_count: int,
    rate_set: Optional[RateSet],
) -> BonusRecord:
    """
    Calculate premiums for one bonus payment.

    Args:
        amount: Bonus amount paid
        employee: Employee receiving it
        pay_date: Payment date
        prior_fiscal_year_bonus_total: Standardized bonuses already paid this fiscal year
        trailing_12_month_count: Bonus payments in the preceding twelve months,
            not counting this one
        rate_set: Rates in effect on the pay date, or None

    Returns:
        BonusRecord; a fourth payment within twelve months is reclassified as
        salary and carries no bonus premiums
    """
    amount = to_decimal(amount)
    standard = standard_bonus(amount)
    record = BonusRecord(
        amount=amount,
        pay_date=pay_date,
        standard_bonus_amount=standard,
        capped_health_amount=ZERO,
        capped_pension_amount=ZERO,
        premiums=MonthlyPremium(standard_value=standard),
    )
    validate_bonus(amount, employee, pay_date, record)

    exemption = determine_exemption(employee, pay_date)
    age_flags = determine_age_flags(employee.birth_date, pay_date)

    if trailing_12_month_count + 1 > MAX_BONUS_PAYMENTS_PER_YEAR:
        record.reclassified_as_salary = True
        record.reasons.append(
            f"Payment {trailing_12_month_count + 1} within twelve months; "
            f"treated as salary and added to the month's compensation"
        )
        _report_requirement(record, exemption.not_present_at_month_end, exemption.exempt, age_flags.no_health)
        record.reasons.append(record.report_reason)
        return record

    caps = apply_bonus_caps(standard, prior_fiscal_year_bonus_total)
    record.capped_health_amount = caps.capped_health
    record.capped_pension_amount = caps.capped_pension
    record.health_cap_applied = caps.health_cap_applied
    record.pension_cap_applied = caps.pension_cap_applied
    if caps.health_cap_applied:
        record.reasons.append(
            f"Health/care base capped at {caps.capped_health:,.0f} by the fiscal-year limit"
        )
    if caps.pension_cap_applied:
        record.reasons.append(
            f"Pension base capped at {caps.capped_pension:,.0f} per payment"
        )

    health_base = caps.capped_health
    care_base = caps.capped_health
    pension_base = caps.capped_pension

    if exemption.exempt:
        health_base = care_base = pension_base = ZERO
        record.reasons.extend(exemption.reasons)
    elif exemption.not_present_at_month_end:
        health_base = care_base = pension_base = ZERO
        record.reasons.append("Retired before month end; no bonus premiums")
    else:
        if age_flags.no_health:
            health_base = care_base = ZERO
        if age_flags.no_pension:
            pension_base = ZERO
        record.reasons.extend(age_flags.reasons)
    if age_flags.care_type != CARE_TYPE2:
        care_base = ZERO

    if rate_set is None:
        record.reasons.append("No rate set configured for the pay date")
        logger.warning("No rate set for bonus paid %s to %s", pay_date, employee.employee_id)
    else:
        premiums = record.premiums
        premiums.health_employee, premiums.health_employer = _split_half(
            health_base, rate_set.health_employee_rate, rate_set.health_employer_rate)
        premiums.care_employee, premiums.care_employer = _split_half(
            care_base, rate_set.care_employee_rate, rate_set.care_employer_rate)
        premiums.pension_employee, premiums.pension_employer, premiums.pension_total = _split_pension(
            pension_base, rate_set.pension_employee_rate, rate_set.pension_employer_rate)

    _report_requirement(record, exemption.not_present_at_month_end, exemption.exempt, age_flags.no_health)
    record.reasons.append(record.report_reason)
    return record
