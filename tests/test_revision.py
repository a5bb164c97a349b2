"""
Unit tests for revision detection.

Focused tests for:
- Month-over-month fixed pay change detection
- Grade difference threshold and apply month
- Grace period, window overrun and base-day disqualification
- Return-from-leave scanning
"""

import unittest
from datetime import date
from decimal import Decimal
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from shaho.models import CompensationEntry, EmployeeProfile
from shaho.rules.grade_table import DEFAULT_GRADE_TABLE
from shaho.rules.revision import (
    detect_fixed_pay_changes,
    detect_return_from_leave_revisions,
    detect_revision,
    detect_revisions,
    return_from_leave_date,
)


def entry(month, fixed, days=20, variable=0):
    return CompensationEntry(
        month=month,
        fixed_amount=Decimal(fixed),
        variable_amount=Decimal(variable),
        payment_base_days=days,
    )


def pay_history(before, after, change_month, days=None):
    """Twelve months paying `before` until change_month, then `after`."""
    days = days or {}
    return {
        m: entry(m, before if m < change_month else after, days.get(m, 20))
        for m in range(1, 13)
    }


class TestDetectFixedPayChanges(unittest.TestCase):
    """Tests for month-over-month change detection."""

    def test_single_change(self):
        self.assertEqual(detect_fixed_pay_changes(pay_history(300000, 400000, 4)), [4])

    def test_no_change(self):
        self.assertEqual(detect_fixed_pay_changes(pay_history(300000, 300000, 4)), [])

    def test_short_month_is_skipped(self):
        compensation = {1: entry(1, 300000), 2: entry(2, 250000, days=10), 3: entry(3, 300000)}
        self.assertEqual(detect_fixed_pay_changes(compensation), [])

    def test_change_from_zero_is_ignored(self):
        compensation = {1: entry(1, 0), 2: entry(2, 300000), 3: entry(3, 320000)}
        self.assertEqual(detect_fixed_pay_changes(compensation), [3])


class TestDetectRevision(unittest.TestCase):
    """Tests for detect_revision."""

    def test_raise_crossing_two_grades_is_eligible(self):
        """300,000 -> 400,000 in April is revised from July."""
        compensation = pay_history(300000, 400000, 4)
        candidate = detect_revision('E001', 4, compensation, DEFAULT_GRADE_TABLE, current_grade=22)
        self.assertTrue(candidate.eligible)
        self.assertEqual(candidate.average, Decimal('400000'))
        self.assertEqual(candidate.new_grade, 27)
        self.assertEqual(candidate.new_standard, Decimal('410000'))
        self.assertEqual(candidate.grade_difference, 5)
        self.assertEqual(candidate.apply_start_month, 7)
        self.assertIn("revised from month 7", candidate.reasons[-1])

    def test_one_grade_difference_is_not_eligible(self):
        compensation = pay_history(300000, 320000, 4)
        candidate = detect_revision('E001', 4, compensation, DEFAULT_GRADE_TABLE, current_grade=22)
        self.assertFalse(candidate.eligible)
        self.assertEqual(candidate.grade_difference, 1)
        self.assertIn("at least 2", candidate.reasons[-1])

    def test_pay_cut_is_eligible(self):
        compensation = pay_history(300000, 240000, 5)
        candidate = detect_revision('E001', 5, compensation, DEFAULT_GRADE_TABLE, current_grade=22)
        self.assertTrue(candidate.eligible)
        self.assertEqual(candidate.new_grade, 19)

    def test_eligibility_follows_grade_difference(self):
        """Eligibility is decided by the grade difference alone."""
        for after in range(200000, 460000, 5000):
            compensation = pay_history(300000, after, 4)
            candidate = detect_revision('E001', 4, compensation, DEFAULT_GRADE_TABLE, current_grade=22)
            self.assertEqual(candidate.eligible, candidate.grade_difference >= 2, after)

    def test_short_month_disqualifies_window(self):
        compensation = pay_history(300000, 400000, 4, days={5: 16})
        candidate = detect_revision('E001', 4, compensation, DEFAULT_GRADE_TABLE, current_grade=22)
        self.assertFalse(candidate.eligible)
        self.assertIsNone(candidate.average)
        self.assertIn("month 5 (16 days)", candidate.reasons[0])

    def test_missing_month_disqualifies_window(self):
        compensation = pay_history(300000, 400000, 4)
        del compensation[6]
        candidate = detect_revision('E001', 4, compensation, DEFAULT_GRADE_TABLE, current_grade=22)
        self.assertFalse(candidate.eligible)
        self.assertIn("month 6 (0 days)", candidate.reasons[0])

    def test_window_past_december(self):
        compensation = pay_history(300000, 400000, 11)
        candidate = detect_revision('E001', 11, compensation, DEFAULT_GRADE_TABLE, current_grade=22)
        self.assertFalse(candidate.eligible)
        self.assertIn("past December", candidate.reasons[0])

    def test_apply_month_wraps_into_next_year(self):
        compensation = pay_history(300000, 400000, 10)
        candidate = detect_revision('E001', 10, compensation, DEFAULT_GRADE_TABLE, current_grade=22, year=2025)
        self.assertTrue(candidate.eligible)
        self.assertEqual((candidate.apply_start_year, candidate.apply_start_month), (2026, 1))

    def test_grace_period_after_joining(self):
        compensation = pay_history(300000, 400000, 5)
        candidate = detect_revision('E002', 5, compensation, DEFAULT_GRADE_TABLE, current_grade=22,
                                    join_date=date(2025, 3, 1), year=2025)
        self.assertFalse(candidate.eligible)
        self.assertIsNone(candidate.average)
        self.assertIn("within 3 months of joining", candidate.reasons[0])

        compensation = pay_history(300000, 400000, 7)
        candidate = detect_revision('E002', 7, compensation, DEFAULT_GRADE_TABLE, current_grade=22,
                                    join_date=date(2025, 3, 1), year=2025)
        self.assertTrue(candidate.eligible)

    def test_december_joiner_not_covered_in_next_year(self):
        """The grace period compares calendar years, so a January change is evaluated."""
        compensation = pay_history(300000, 400000, 1)
        compensation[1] = entry(1, 400000)
        candidate = detect_revision('E007', 1, compensation, DEFAULT_GRADE_TABLE, current_grade=22,
                                    join_date=date(2024, 12, 1), year=2025)
        self.assertTrue(candidate.eligible)
        self.assertFalse(any("joining" in r for r in candidate.reasons))

    def test_without_current_grade(self):
        compensation = pay_history(300000, 400000, 4)
        candidate = detect_revision('E001', 4, compensation, DEFAULT_GRADE_TABLE, current_grade=None)
        self.assertFalse(candidate.eligible)
        self.assertEqual(candidate.new_grade, 27)
        self.assertIn("No current grade", candidate.reasons[-1])

    def test_average_uses_total_pay(self):
        compensation = {m: entry(m, 300000, variable=30000 if m >= 4 else 0) for m in range(1, 13)}
        compensation[4] = entry(4, 320000, variable=30000)
        compensation[5] = entry(5, 320000, variable=30000)
        compensation[6] = entry(6, 320000, variable=30000)
        candidate = detect_revision('E001', 4, compensation, DEFAULT_GRADE_TABLE, current_grade=22)
        self.assertEqual(candidate.average, Decimal('350000'))
        self.assertEqual(candidate.new_grade, 25)
        self.assertTrue(candidate.eligible)


class TestDetectRevisions(unittest.TestCase):
    """Tests for whole-year scanning."""

    def test_each_change_is_evaluated(self):
        employee = EmployeeProfile('E001', 'Sato', date(1980, 1, 1), date(2015, 4, 1))
        compensation = pay_history(300000, 400000, 4)
        candidates = detect_revisions(employee, compensation, DEFAULT_GRADE_TABLE, 22, 2025)
        self.assertEqual([c.change_month for c in candidates], [4])
        self.assertTrue(candidates[0].eligible)


class TestReturnFromLeave(unittest.TestCase):
    """Tests for return-from-leave revisions."""

    def setUp(self):
        """Set up test fixtures."""
        self.employee = EmployeeProfile(
            employee_id='E003',
            name='Returner',
            birth_date=date(1990, 3, 10),
            join_date=date(2018, 10, 1),
            childcare_start=date(2024, 7, 1),
            childcare_end=date(2025, 6, 30),
        )

    def test_return_date_resolution(self):
        self.assertEqual(return_from_leave_date(self.employee), date(2025, 7, 1))
        self.employee.return_from_leave_date = date(2025, 7, 15)
        self.assertEqual(return_from_leave_date(self.employee), date(2025, 7, 15))

    def test_change_in_return_month_is_evaluated(self):
        compensation = pay_history(100000, 250000, 7)
        candidates = detect_return_from_leave_revisions(
            self.employee, compensation, DEFAULT_GRADE_TABLE, 22, 2025)
        self.assertEqual(len(candidates), 1)
        candidate = candidates[0]
        self.assertEqual(candidate.change_month, 7)
        self.assertTrue(candidate.reasons[0].startswith("Return from leave"))
        self.assertEqual(candidate.new_grade, 20)
        self.assertTrue(candidate.eligible)
        self.assertEqual(candidate.apply_start_month, 10)

    def test_maternity_end_used_when_no_childcare(self):
        employee = EmployeeProfile('E008', 'Maternity Only', date(1990, 3, 10), date(2018, 10, 1),
                                   maternity_start=date(2025, 3, 1), maternity_end=date(2025, 5, 31))
        self.assertEqual(return_from_leave_date(employee), date(2025, 6, 1))

    def test_childcare_end_preferred_over_maternity_end(self):
        self.employee.maternity_start = date(2024, 5, 1)
        self.employee.maternity_end = date(2024, 6, 30)
        self.assertEqual(return_from_leave_date(self.employee), date(2025, 7, 1))

    def test_unpaid_leave_months_are_passed_over(self):
        """Pay before leave is compared with pay after return when leave months are unpaid."""
        employee = EmployeeProfile('E008', 'Maternity Only', date(1990, 3, 10), date(2018, 10, 1),
                                   maternity_start=date(2025, 3, 1), maternity_end=date(2025, 5, 31))
        compensation = {
            1: entry(1, 300000),
            2: entry(2, 300000),
            3: entry(3, 0, days=0),
            4: entry(4, 0, days=0),
            5: entry(5, 0, days=0),
            6: entry(6, 400000),
            7: entry(7, 400000),
            8: entry(8, 400000),
        }
        candidates = detect_return_from_leave_revisions(
            employee, compensation, DEFAULT_GRADE_TABLE, 22, 2025)
        self.assertEqual(len(candidates), 1)
        self.assertEqual(candidates[0].change_month, 6)
        self.assertTrue(candidates[0].eligible)
        self.assertEqual(candidates[0].apply_start_month, 9)
        self.assertEqual(detect_fixed_pay_changes(compensation), [6])

    def test_change_outside_scan_window_ignored(self):
        compensation = pay_history(250000, 300000, 11)
        candidates = detect_return_from_leave_revisions(
            self.employee, compensation, DEFAULT_GRADE_TABLE, 22, 2025)
        self.assertEqual(candidates, [])

    def test_return_in_other_year(self):
        compensation = pay_history(100000, 250000, 7)
        candidates = detect_return_from_leave_revisions(
            self.employee, compensation, DEFAULT_GRADE_TABLE, 22, 2026)
        self.assertEqual(candidates, [])


if __name__ == '__main__':
    unittest.main()
