"""
Shaho Premium Engine - Data Model

Plain dataclasses shared by the rule modules. Amounts are Decimal yen,
dates are datetime.date, and absent values are None.
"""

import threading
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional


CARE_NONE = 'none'
CARE_TYPE1 = 'type1'
CARE_TYPE2 = 'type2'


@dataclass(frozen=True)
class CompensationEntry:
    """One month of payroll facts for one employee."""
    month: int
    fixed_amount: Decimal = Decimal('0')
    variable_amount: Decimal = Decimal('0')
    total_amount: Optional[Decimal] = None
    payment_base_days: int = 0
    absence_deduction: Decimal = Decimal('0')
    year: Optional[int] = None

    def __post_init__(self):
        if self.total_amount is None:
            object.__setattr__(self, 'total_amount', self.fixed_amount + self.variable_amount)


@dataclass(frozen=True)
class GradeTableRow:
    rank: int
    lower_bound: Decimal
    upper_bound: Decimal
    standard_value: Decimal


@dataclass(frozen=True)
class GradeResult:
    rank: int
    standard_value: Decimal


@dataclass(frozen=True)
class RateSet:
    """Premium rates for one year/region, effective from a given month."""
    health_employee_rate: Decimal
    health_employer_rate: Decimal
    care_employee_rate: Decimal
    care_employer_rate: Decimal
    pension_employee_rate: Decimal
    pension_employer_rate: Decimal
    year: Optional[int] = None
    region: Optional[str] = None
    effective_from_month: int = 1


@dataclass
class EmployeeProfile:
    """
    Employee facts consumed by the engine.

    Everything except the acquisition fields is read-only to the rules;
    acquisition fields are set through record_acquisition().
    """
    employee_id: str
    name: str
    birth_date: date
    join_date: date
    retire_date: Optional[date] = None
    maternity_start: Optional[date] = None
    maternity_end: Optional[date] = None
    maternity_expected_end: Optional[date] = None
    childcare_start: Optional[date] = None
    childcare_end: Optional[date] = None
    childcare_expected_end: Optional[date] = None
    childcare_notification_submitted: bool = False
    childcare_living_together: bool = False
    return_from_leave_date: Optional[date] = None
    current_standard: Optional[Decimal] = None
    current_grade: Optional[int] = None
    acquisition_grade: Optional[int] = None
    acquisition_standard: Optional[Decimal] = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record_acquisition(self, grade: int, standard: Decimal) -> bool:
        """
        Store the acquisition-time grade unless one is already recorded.

        Returns:
            True if the values were written, False if an existing grade was kept
        """
        with self._lock:
            if self.acquisition_grade is not None:
                return False
            self.acquisition_grade = grade
            self.acquisition_standard = standard
            return True


@dataclass
class ExemptionStatus:
    exempt: bool = False
    kind: Optional[str] = None
    not_present_at_month_end: bool = False
    retired_before_month: bool = False
    reasons: List[str] = field(default_factory=list)


@dataclass
class AgeFlags:
    age: int
    no_health: bool = False
    no_pension: bool = False
    care_type: str = CARE_NONE
    reasons: List[str] = field(default_factory=list)


@dataclass
class AcquisitionResult:
    standard_value: Decimal
    grade: int
    used_month: Optional[int]
    reasons: List[str] = field(default_factory=list)
    persisted: bool = False


@dataclass
class RegularDetermination:
    employee_id: str
    average_value: Optional[Decimal]
    excluded_months: List[int]
    grade: int
    standard_value: Decimal
    effective_from_year: Optional[int] = None
    effective_from_month: int = 9
    used_months: List[int] = field(default_factory=list)
    excluded_reasons: List[str] = field(default_factory=list)
    retained: bool = False
    reasons: List[str] = field(default_factory=list)


@dataclass
class RevisionCandidate:
    employee_id: str
    change_month: int
    average: Optional[Decimal] = None
    current_grade: Optional[int] = None
    new_grade: Optional[int] = None
    new_standard: Optional[Decimal] = None
    grade_difference: Optional[int] = None
    apply_start_year: Optional[int] = None
    apply_start_month: Optional[int] = None
    eligible: bool = False
    reasons: List[str] = field(default_factory=list)


@dataclass
class MonthlyPremium:
    health_employee: Decimal = Decimal('0')
    health_employer: Decimal = Decimal('0')
    care_employee: Decimal = Decimal('0')
    care_employer: Decimal = Decimal('0')
    pension_employee: Decimal = Decimal('0')
    pension_employer: Decimal = Decimal('0')
    pension_total: Decimal = Decimal('0')
    standard_value: Optional[Decimal] = None
    provisional: bool = False
    reasons: List[str] = field(default_factory=list)

    @property
    def employee_total(self) -> Decimal:
        return self.health_employee + self.care_employee + self.pension_employee

    @property
    def employer_total(self) -> Decimal:
        return self.health_employer + self.care_employer + self.pension_employer


@dataclass(frozen=True)
class BonusCaps:
    capped_health: Decimal
    capped_pension: Decimal
    health_cap_applied: bool
    pension_cap_applied: bool


@dataclass
class BonusRecord:
    amount: Decimal
    pay_date: date
    standard_bonus_amount: Decimal
    capped_health_amount: Decimal
    capped_pension_amount: Decimal
    premiums: MonthlyPremium
    reclassified_as_salary: bool = False
    health_cap_applied: bool = False
    pension_cap_applied: bool = False
    report_required: bool = False
    report_reason: str = ''
    report_deadline: Optional[date] = None
    reasons: List[str] = field(default_factory=list)
    error_messages: List[str] = field(default_factory=list)
    warning_messages: List[str] = field(default_factory=list)
