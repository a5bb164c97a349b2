"""
Shaho Premium Engine

Loads employee, compensation and bonus data, runs each employee's
determinations in chronological order, and collects findings.
"""

import csv
import logging
import sys
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from shaho.models import (
    AcquisitionResult,
    BonusRecord,
    CompensationEntry,
    EmployeeProfile,
    GradeTableRow,
    MonthlyPremium,
    RateSet,
    RegularDetermination,
    RevisionCandidate,
)
from shaho.rules import acquisition, bonus_premium, eligibility, monthly_premium, regular, revision
from shaho.rules.grade_table import DEFAULT_GRADE_TABLE, find_grade, grade_table_from_rows, validate_grade_table
from shaho.rules.rate_table import find_rate_set, rate_sets_from_config

logger = logging.getLogger(__name__)

RED_FINDINGS = ['REVISION_REQUIRED', 'BONUS_REPORT_REQUIRED']
YELLOW_FINDINGS = ['GRADE_UNRESOLVED', 'PROVISIONAL_STANDARD', 'RATE_SET_MISSING', 'BONUS_VALIDATION']

TRUE_VALUES = ('1', 'true', 'yes', 'y')
FALSE_VALUES = ('', '0', 'false', 'no', 'n')


def _parse_decimal(value: str, field_name: str, row_num: int) -> Decimal:
    """Parse a decimal value from CSV, raising clear errors on failure."""
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValueError(f"{field_name} must be a valid number")


def _parse_int(value: str, field_name: str, row_num: int) -> int:
    try:
        return int(str(value).strip())
    except ValueError:
        raise ValueError(f"{field_name} must be a whole number")


def _parse_date(value: str, field_name: str, row_num: int) -> date:
    """Parse a date value from CSV (YYYY-MM-DD format), raising clear errors on failure."""
    try:
        return datetime.strptime(value.strip(), '%Y-%m-%d').date()
    except ValueError:
        raise ValueError(f"{field_name} must be in YYYY-MM-DD format")


def _parse_optional_date(row: Dict, field_name: str, row_num: int) -> Optional[date]:
    value = (row.get(field_name) or '').strip()
    return _parse_date(value, field_name, row_num) if value else None


def _parse_optional_decimal(row: Dict, field_name: str, row_num: int) -> Optional[Decimal]:
    value = (row.get(field_name) or '').strip()
    return _parse_decimal(value, field_name, row_num) if value else None


def _parse_bool(row: Dict, field_name: str, row_num: int) -> bool:
    value = (row.get(field_name) or '').strip().lower()
    if value in TRUE_VALUES:
        return True
    if value in FALSE_VALUES:
        return False
    raise ValueError(f"{field_name} must be true or false")


def _read_csv(csv_path: Path, required_columns: List[str], label: str, row_parser) -> List:
    """
    Read a CSV file, converting each row with row_parser.

    Raises:
        SystemExit(2): If the file cannot be read, lacks columns, or a row is invalid
    """
    try:
        with open(csv_path, 'r', encoding='utf-8') as f:
            reader = csv.DictReader(f)

            if not reader.fieldnames:
                print(f"Error: {label} CSV file is empty or has no header row", file=sys.stderr)
                sys.exit(2)

            missing_columns = [col for col in required_columns if col not in reader.fieldnames]
            if missing_columns:
                print(f"Error: Missing required {label} CSV columns: {', '.join(missing_columns)}", file=sys.stderr)
                sys.exit(2)

            records = []
            for row_num, row in enumerate(reader, start=2):  # Start at 2 (header is row 1)
                try:
                    records.append(row_parser(row, row_num))
                except (ValueError, KeyError) as e:
                    print(f"Error: Row {row_num}: {e}", file=sys.stderr)
                    sys.exit(2)
            return records

    except IOError as e:
        print(f"Error: Cannot read {label} file: {e}", file=sys.stderr)
        sys.exit(2)


def _employee_from_row(row: Dict, row_num: int) -> EmployeeProfile:
    current_grade = (row.get('current_grade') or '').strip()
    employee = EmployeeProfile(
        employee_id=str(row['employee_id']).strip(),
        name=str(row['name']).strip(),
        birth_date=_parse_date(row['birth_date'], 'birth_date', row_num),
        join_date=_parse_date(row['join_date'], 'join_date', row_num),
        retire_date=_parse_optional_date(row, 'retire_date', row_num),
        maternity_start=_parse_optional_date(row, 'maternity_start', row_num),
        maternity_end=_parse_optional_date(row, 'maternity_end', row_num),
        maternity_expected_end=_parse_optional_date(row, 'maternity_expected_end', row_num),
        childcare_start=_parse_optional_date(row, 'childcare_start', row_num),
        childcare_end=_parse_optional_date(row, 'childcare_end', row_num),
        childcare_expected_end=_parse_optional_date(row, 'childcare_expected_end', row_num),
        childcare_notification_submitted=_parse_bool(row, 'childcare_notification_submitted', row_num),
        childcare_living_together=_parse_bool(row, 'childcare_living_together', row_num),
        return_from_leave_date=_parse_optional_date(row, 'return_from_leave_date', row_num),
        current_standard=_parse_optional_decimal(row, 'current_standard', row_num),
        current_grade=_parse_int(current_grade, 'current_grade', row_num) if current_grade else None,
    )
    if not employee.employee_id:
        raise ValueError("employee_id must not be empty")
    if employee.retire_date is not None and employee.retire_date < employee.join_date:
        raise ValueError("retire_date must be on or after join_date")
    return employee


def load_employees(csv_path: Path) -> List[EmployeeProfile]:
    """
    Load employee profiles from CSV.

    Required columns are employee_id, name, birth_date and join_date; leave
    dates, childcare flags and the current standard are optional.
    """
    employees = _read_csv(csv_path, ['employee_id', 'name', 'birth_date', 'join_date'],
                          'employee', _employee_from_row)
    if not employees:
        print("Error: Employee CSV file contains no data rows", file=sys.stderr)
        sys.exit(2)
    return employees


def _compensation_from_row(row: Dict, row_num: int) -> Tuple[str, CompensationEntry]:
    month = _parse_int(row['month'], 'month', row_num)
    if not 1 <= month <= 12:
        raise ValueError("month must be between 1 and 12")
    entry = CompensationEntry(
        month=month,
        year=_parse_int(row['year'], 'year', row_num),
        fixed_amount=_parse_decimal(row['fixed_amount'], 'fixed_amount', row_num),
        variable_amount=_parse_decimal(row['variable_amount'], 'variable_amount', row_num),
        total_amount=_parse_optional_decimal(row, 'total_amount', row_num),
        payment_base_days=_parse_int(row['payment_base_days'], 'payment_base_days', row_num),
        absence_deduction=_parse_optional_decimal(row, 'absence_deduction', row_num) or Decimal('0'),
    )
    if entry.fixed_amount < 0 or entry.variable_amount < 0 or entry.total_amount < 0:
        raise ValueError("compensation amounts must be non-negative")
    if not 0 <= entry.payment_base_days <= 31:
        raise ValueError("payment_base_days must be between 0 and 31")
    return str(row['employee_id']).strip(), entry


def load_compensation_data(csv_path: Path) -> Dict[str, List[CompensationEntry]]:
    """Load monthly compensation entries from CSV, grouped by employee_id."""
    rows = _read_csv(
        csv_path,
        ['employee_id', 'year', 'month', 'fixed_amount', 'variable_amount', 'payment_base_days'],
        'compensation',
        _compensation_from_row,
    )
    grouped: Dict[str, List[CompensationEntry]] = {}
    for employee_id, entry in rows:
        grouped.setdefault(employee_id, []).append(entry)
    return grouped


def _bonus_from_row(row: Dict, row_num: int) -> Tuple[str, date, Decimal]:
    return (
        str(row['employee_id']).strip(),
        _parse_date(row['pay_date'], 'pay_date', row_num),
        _parse_decimal(row['amount'], 'amount', row_num),
    )


def load_bonus_data(csv_path: Path) -> Dict[str, List[Tuple[date, Decimal]]]:
    """Load bonus payments from CSV, grouped by employee_id."""
    rows = _read_csv(csv_path, ['employee_id', 'pay_date', 'amount'], 'bonus', _bonus_from_row)
    grouped: Dict[str, List[Tuple[date, Decimal]]] = {}
    for employee_id, pay_date, amount in rows:
        grouped.setdefault(employee_id, []).append((pay_date, amount))
    return grouped


def compensation_for_year(entries: List[CompensationEntry], year: int) -> Dict[int, CompensationEntry]:
    """Month-keyed entries for one year; entries without a year are taken as belonging to it."""
    return {e.month: e for e in entries if e.year is None or e.year == year}


@dataclass
class EngineContext:
    """Caller-owned inputs shared by one engine run."""
    config: Dict
    year: int
    region: str
    grade_table: List[GradeTableRow]
    rate_sets: List[RateSet]

    @classmethod
    def from_config(cls, config: Dict, year: Optional[int] = None) -> 'EngineContext':
        """
        Build a context from a validated config dictionary.

        Raises:
            ValueError: If the grade table or rates are malformed
        """
        table_config = config.get('grade_table', 'default')
        if table_config in (None, 'default'):
            grade_table = list(DEFAULT_GRADE_TABLE)
        else:
            grade_table = grade_table_from_rows(table_config)
        errors = validate_grade_table(grade_table)
        if errors:
            raise ValueError("Invalid grade_table: " + "; ".join(errors))

        return cls(
            config=config,
            year=int(year if year is not None else config['target_year']),
            region=str(config['region']),
            grade_table=grade_table,
            rate_sets=rate_sets_from_config(config),
        )

    def rate_set_for(self, year: int, month: int) -> Optional[RateSet]:
        return find_rate_set(self.rate_sets, year, self.region, month)


@dataclass
class EmployeeResult:
    employee: EmployeeProfile
    acquisition: Optional[AcquisitionResult] = None
    regular: Optional[RegularDetermination] = None
    revisions: List[RevisionCandidate] = field(default_factory=list)
    standards: Dict[int, Optional[Decimal]] = field(default_factory=dict)
    monthly: Dict[int, MonthlyPremium] = field(default_factory=dict)
    bonuses: List[BonusRecord] = field(default_factory=list)
    compensation: Dict[int, CompensationEntry] = field(default_factory=dict)


def _run_bonuses(context: EngineContext, employee: EmployeeProfile,
                 bonuses: List[Tuple[date, Decimal]], result: EmployeeResult) -> None:
    pay_dates: List[date] = []
    for pay_date, amount in sorted(bonuses):
        record = bonus_premium.calculate_bonus_premiums(
            amount,
            employee,
            pay_date,
            bonus_premium.prior_fiscal_year_total(result.bonuses, pay_date),
            bonus_premium.count_trailing_12_months(pay_dates, pay_date),
            context.rate_set_for(pay_date.year, pay_date.month),
        )
        pay_dates.append(pay_date)
        result.bonuses.append(record)
        if record.reclassified_as_salary and pay_date.year == context.year:
            month = pay_date.month
            result.compensation[month] = bonus_premium.fold_bonus_into_compensation(
                result.compensation.get(month), record)


def _grade_of(context: EngineContext, standard: Optional[Decimal]) -> Optional[int]:
    if standard is None:
        return None
    grade = find_grade(context.grade_table, standard)
    return grade.rank if grade else None


def run_employee(context: EngineContext, employee: EmployeeProfile,
                 compensation_by_month: Dict[int, CompensationEntry],
                 bonuses: Optional[List[Tuple[date, Decimal]]] = None) -> EmployeeResult:
    """
    Run one employee's year.

    Bonuses are processed first so reclassified payments reach the monthly
    compensation. Acquisition, revisions and the regular determination are
    then applied month by month, and each month's premium uses the standard
    in effect at that point.
    """
    year = context.year
    result = EmployeeResult(employee=employee, compensation=dict(compensation_by_month))
    _run_bonuses(context, employee, bonuses or [], result)
    compensation = result.compensation

    if employee.join_date.year == year:
        result.acquisition = acquisition.determine_acquisition_grade(
            employee, compensation, context.grade_table, year)

    standard = employee.current_standard
    if standard is None and employee.acquisition_standard:
        standard = employee.acquisition_standard
    grade = employee.current_grade if employee.current_grade is not None else _grade_of(context, standard)

    change_months = set(revision.detect_fixed_pay_changes(compensation))
    leave_candidates = {
        c.change_month: c
        for c in revision.detect_return_from_leave_revisions(
            employee, compensation, context.grade_table, grade, year)
    }
    change_months.update(leave_candidates)

    pending: Dict[int, RevisionCandidate] = {}
    for month in range(1, 13):
        if month == regular.EFFECTIVE_MONTH and result.regular is not None:
            summer_revision = any(
                c.eligible and c.apply_start_year == year and 7 <= c.apply_start_month <= 9
                for c in result.revisions
            )
            if summer_revision:
                result.regular.reasons.append("Superseded by a revision effective July-September")
            elif result.regular.standard_value > 0:
                standard = result.regular.standard_value
                grade = result.regular.grade

        if month in pending:
            applied = pending.pop(month)
            standard, grade = applied.new_standard, applied.new_grade

        if month in change_months:
            # graded against the standard in effect when the pay changed
            candidate = revision.detect_revision(
                employee.employee_id, month, compensation, context.grade_table,
                grade, employee.join_date, year)
            if month in leave_candidates:
                candidate.reasons = leave_candidates[month].reasons[:1] + candidate.reasons
            result.revisions.append(candidate)
            if candidate.eligible and candidate.apply_start_year == year:
                pending[candidate.apply_start_month] = candidate

        if month == 7:
            result.regular = regular.determine_regular_grade(
                employee.employee_id, compensation, context.grade_table, standard, year, employee)

        result.standards[month] = standard
        entry = compensation.get(month)
        result.monthly[month] = monthly_premium.calculate_monthly_premiums(
            standard,
            eligibility.determine_month_exemption(employee, year, month),
            eligibility.determine_age_flags(employee.birth_date, date(year, month, 1)),
            context.rate_set_for(year, month),
            month_total=entry.total_amount if entry is not None else None,
            grade_table=context.grade_table,
            enrollment=monthly_premium.enrollment_status(employee, year, month),
        )

    logger.info("Processed employee %s for %s", employee.employee_id, year)
    return result


def _finding(employee: EmployeeProfile, finding_type: str, description: str, month=None) -> Dict:
    return {
        'employee_id': employee.employee_id,
        'employee_name': employee.name,
        'finding_type': finding_type,
        'finding_description': description,
        'month': month,
    }


def collect_findings(result: EmployeeResult, year: int) -> List[Dict]:
    """Turn one employee's results into finding dictionaries."""
    employee = result.employee
    findings = []

    if result.acquisition is not None and result.acquisition.grade == 0:
        findings.append(_finding(employee, 'GRADE_UNRESOLVED',
                                 "Acquisition-time grade unresolved: " + result.acquisition.reasons[-1]))
    if result.regular is not None and result.regular.grade == 0 and not result.regular.retained:
        findings.append(_finding(employee, 'GRADE_UNRESOLVED',
                                 "Regular determination undetermined: " + result.regular.reasons[-1], 9))

    for candidate in result.revisions:
        if candidate.eligible:
            findings.append(_finding(
                employee, 'REVISION_REQUIRED',
                f"Revision required: {candidate.reasons[-1]} "
                f"(effective {candidate.apply_start_year}-{candidate.apply_start_month:02d})",
                candidate.change_month,
            ))

    provisional = [m for m, p in sorted(result.monthly.items()) if p.provisional]
    if provisional:
        findings.append(_finding(
            employee, 'PROVISIONAL_STANDARD',
            "No standard remuneration assigned; premiums provisionally based on monthly pay for months "
            + ", ".join(str(m) for m in provisional),
        ))

    missing_rates = [m for m, p in sorted(result.monthly.items())
                     if "No rate set configured for this month" in p.reasons]
    if missing_rates:
        findings.append(_finding(
            employee, 'RATE_SET_MISSING',
            f"No rate set for {year} months " + ", ".join(str(m) for m in missing_rates),
        ))

    for record in result.bonuses:
        if record.pay_date.year != year:
            continue
        if record.report_required:
            findings.append(_finding(
                employee, 'BONUS_REPORT_REQUIRED',
                f"Bonus of {record.amount:,.0f} paid {record.pay_date.isoformat()}: {record.report_reason}",
                record.pay_date.month,
            ))
        for message in record.error_messages + record.warning_messages:
            findings.append(_finding(employee, 'BONUS_VALIDATION', message, record.pay_date.month))

    return findings


def run_engine(
    employees: List[EmployeeProfile],
    compensation: Dict[str, List[CompensationEntry]],
    bonuses: Optional[Dict[str, List[Tuple[date, Decimal]]]],
    context: EngineContext,
) -> Tuple[str, int, List[EmployeeResult], List[Dict]]:
    """
    Run the engine for every employee.

    Args:
        employees: Employee profiles
        compensation: Compensation entries grouped by employee_id
        bonuses: Bonus payments grouped by employee_id, or None
        context: Caller-owned run context

    Returns:
        Tuple of (status, exit_code, results, findings)
    """
    bonuses = bonuses or {}
    results = []
    all_findings = []

    for employee in employees:
        entries = compensation_for_year(compensation.get(employee.employee_id, []), context.year)
        result = run_employee(context, employee, entries, bonuses.get(employee.employee_id, []))
        results.append(result)
        all_findings.extend(collect_findings(result, context.year))

    red_count = len([f for f in all_findings if f['finding_type'] in RED_FINDINGS])
    yellow_count = len([f for f in all_findings if f['finding_type'] in YELLOW_FINDINGS])

    # Determine traffic-light status
    if red_count > 0:
        status = "RED"
        exit_code = 2
    elif yellow_count > 0:
        status = "YELLOW"
        exit_code = 0
    else:
        status = "GREEN"
        exit_code = 0

    return status, exit_code, results, all_findings
