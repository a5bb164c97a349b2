"""
Unit tests for the annual regular determination.

Focused tests for:
- Exclusion of short or heavily deducted months
- Fallback when one, two or three months are excluded
- Rounding to the nearest thousand before lookup
"""

import unittest
from datetime import date
from decimal import Decimal
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from shaho.models import CompensationEntry, EmployeeProfile
from shaho.rules.grade_table import DEFAULT_GRADE_TABLE
from shaho.rules.regular import determine_regular_grade, exclusion_reason


def entry(month, total, days=20, deduction=0, fixed=None):
    fixed = Decimal(total) if fixed is None else Decimal(fixed)
    return CompensationEntry(
        month=month,
        fixed_amount=fixed,
        variable_amount=Decimal(total) - fixed,
        payment_base_days=days,
        absence_deduction=Decimal(deduction),
    )


class TestRegularDetermination(unittest.TestCase):
    """Tests for determine_regular_grade."""

    def test_mean_of_three_months(self):
        compensation = {4: entry(4, 300000), 5: entry(5, 310000), 6: entry(6, 320000)}
        result = determine_regular_grade('E001', compensation, DEFAULT_GRADE_TABLE)
        self.assertEqual(result.excluded_months, [])
        self.assertEqual(result.used_months, [4, 5, 6])
        self.assertEqual(result.average_value, Decimal('310000'))
        self.assertEqual(result.grade, 23)
        self.assertEqual(result.standard_value, Decimal('320000'))
        self.assertEqual(result.effective_from_month, 9)

    def test_short_month_excluded_mean_of_two(self):
        compensation = {4: entry(4, 300000), 5: entry(5, 500000, days=10), 6: entry(6, 320000)}
        result = determine_regular_grade('E001', compensation, DEFAULT_GRADE_TABLE)
        self.assertEqual(result.excluded_months, [5])
        self.assertEqual(result.average_value, Decimal('310000'))
        self.assertIn("payment base days 10", result.excluded_reasons[0])

    def test_absence_deduction_over_15_percent_excluded(self):
        self.assertIsNotNone(exclusion_reason(4, entry(4, 300000, deduction=45001)))
        self.assertIsNone(exclusion_reason(4, entry(4, 300000, deduction=45000)))
        self.assertIsNone(exclusion_reason(4, entry(4, 50000, fixed=0, deduction=45000)))

    def test_single_usable_month_is_used_directly(self):
        compensation = {4: entry(4, 300000, days=5), 5: entry(5, 300000, days=16), 6: entry(6, 255400)}
        result = determine_regular_grade('E001', compensation, DEFAULT_GRADE_TABLE)
        self.assertEqual(result.excluded_months, [4, 5])
        self.assertEqual(result.average_value, Decimal('255000'))
        self.assertEqual(result.grade, 20)
        self.assertEqual(result.standard_value, Decimal('260000'))

    def test_all_excluded_retains_current_standard(self):
        compensation = {4: entry(4, 300000, days=5), 5: entry(5, 300000, days=5), 6: entry(6, 300000, days=5)}
        result = determine_regular_grade('E001', compensation, DEFAULT_GRADE_TABLE,
                                         current_standard=Decimal('280000'))
        self.assertTrue(result.retained)
        self.assertIsNone(result.average_value)
        self.assertEqual(result.standard_value, Decimal('280000'))
        self.assertEqual(result.grade, 21)
        self.assertIn("retained", result.reasons[-1])

    def test_all_excluded_without_current_standard_is_undetermined(self):
        result = determine_regular_grade('E001', {}, DEFAULT_GRADE_TABLE)
        self.assertFalse(result.retained)
        self.assertEqual(result.grade, 0)
        self.assertEqual(result.standard_value, Decimal('0'))
        self.assertEqual(result.excluded_months, [4, 5, 6])

    def test_average_rounded_to_thousand(self):
        compensation = {4: entry(4, 300400), 5: entry(5, 300600), 6: entry(6, 301100)}
        result = determine_regular_grade('E001', compensation, DEFAULT_GRADE_TABLE)
        self.assertEqual(result.average_value, Decimal('301000'))
        self.assertEqual(result.grade, 22)

    def test_effective_from_september_of_target_year(self):
        compensation = {4: entry(4, 300000), 5: entry(5, 300000), 6: entry(6, 300000)}
        result = determine_regular_grade('E001', compensation, DEFAULT_GRADE_TABLE, year=2025)
        self.assertEqual((result.effective_from_year, result.effective_from_month), (2025, 9))

    def test_june_joiner_not_subject(self):
        employee = EmployeeProfile('E005', 'June Hire', date(1995, 1, 1), date(2025, 6, 1))
        compensation = {6: entry(6, 400000)}
        result = determine_regular_grade('E005', compensation, DEFAULT_GRADE_TABLE,
                                         current_standard=Decimal('410000'), year=2025, employee=employee)
        self.assertTrue(result.retained)
        self.assertEqual(result.standard_value, Decimal('410000'))
        self.assertIn("not subject", result.reasons[0])

    def test_june_leaver_not_subject(self):
        employee = EmployeeProfile('E006', 'Leaver', date(1995, 1, 1), date(2020, 4, 1),
                                   retire_date=date(2025, 6, 30))
        compensation = {4: entry(4, 300000), 5: entry(5, 300000), 6: entry(6, 300000)}
        result = determine_regular_grade('E006', compensation, DEFAULT_GRADE_TABLE, year=2025, employee=employee)
        self.assertFalse(result.retained)
        self.assertEqual(result.grade, 0)
        self.assertIn("not subject", result.reasons[0])

    def test_no_excluded_months_is_idempotent_with_same_pay(self):
        """Re-running on the same window yields the same standard."""
        compensation = {4: entry(4, 300000), 5: entry(5, 300000), 6: entry(6, 300000)}
        first = determine_regular_grade('E001', compensation, DEFAULT_GRADE_TABLE)
        second = determine_regular_grade('E001', compensation, DEFAULT_GRADE_TABLE,
                                         current_standard=first.standard_value)
        self.assertEqual(first.standard_value, second.standard_value)


if __name__ == '__main__':
    unittest.main()
