"""
Standard Remuneration Grade Table

Maps a compensation value to a (rank, standard value) pair using a sorted
table of half-open bands [lower, upper).
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Sequence

from shaho.models import GradeResult, GradeTableRow

logger = logging.getLogger(__name__)


# (rank, lower, upper, standard) for the 50-rank health insurance table
_DEFAULT_BANDS = [
    (1, 1, 63000, 58000),
    (2, 63000, 73000, 68000),
    (3, 73000, 83000, 78000),
    (4, 83000, 93000, 88000),
    (5, 93000, 101000, 98000),
    (6, 101000, 107000, 104000),
    (7, 107000, 114000, 110000),
    (8, 114000, 122000, 118000),
    (9, 122000, 130000, 126000),
    (10, 130000, 138000, 134000),
    (11, 138000, 146000, 142000),
    (12, 146000, 155000, 150000),
    (13, 155000, 165000, 160000),
    (14, 165000, 175000, 170000),
    (15, 175000, 185000, 180000),
    (16, 185000, 195000, 190000),
    (17, 195000, 210000, 200000),
    (18, 210000, 230000, 220000),
    (19, 230000, 250000, 240000),
    (20, 250000, 270000, 260000),
    (21, 270000, 290000, 280000),
    (22, 290000, 310000, 300000),
    (23, 310000, 330000, 320000),
    (24, 330000, 350000, 340000),
    (25, 350000, 370000, 360000),
    (26, 370000, 395000, 380000),
    (27, 395000, 425000, 410000),
    (28, 425000, 455000, 440000),
    (29, 455000, 485000, 470000),
    (30, 485000, 515000, 500000),
    (31, 515000, 545000, 530000),
    (32, 545000, 575000, 560000),
    (33, 575000, 605000, 590000),
    (34, 605000, 635000, 620000),
    (35, 635000, 665000, 650000),
    (36, 665000, 695000, 680000),
    (37, 695000, 730000, 710000),
    (38, 730000, 770000, 750000),
    (39, 770000, 810000, 790000),
    (40, 810000, 855000, 830000),
    (41, 855000, 905000, 880000),
    (42, 905000, 955000, 930000),
    (43, 955000, 1005000, 980000),
    (44, 1005000, 1055000, 1030000),
    (45, 1055000, 1115000, 1090000),
    (46, 1115000, 1175000, 1150000),
    (47, 1175000, 1235000, 1210000),
    (48, 1235000, 1295000, 1270000),
    (49, 1295000, 1355000, 1330000),
    (50, 1355000, 9999999, 1390000),
]

DEFAULT_GRADE_TABLE = [
    GradeTableRow(rank, Decimal(lower), Decimal(upper), Decimal(standard))
    for rank, lower, upper, standard in _DEFAULT_BANDS
]


def find_grade(table: Sequence[GradeTableRow], value) -> Optional[GradeResult]:
    """
    Find the band containing value.

    Args:
        table: Rows sorted by lower bound, non-overlapping
        value: Non-negative compensation amount

    Returns:
        GradeResult for the first row with lower <= value < upper, or None
    """
    if value is None:
        return None
    amount = Decimal(str(value))
    for row in table:
        if row.lower_bound <= amount < row.upper_bound:
            return GradeResult(rank=row.rank, standard_value=row.standard_value)
    logger.debug("No grade band contains %s", amount)
    return None


def validate_grade_table(table: Sequence[GradeTableRow]) -> List[str]:
    """
    Check that a grade table is well formed.

    Returns:
        List of error descriptions; empty when the table is usable
    """
    errors = []
    if not table:
        return ["Grade table is empty"]

    seen_ranks = set()
    previous = None
    for row in table:
        if row.rank in seen_ranks:
            errors.append(f"Rank {row.rank} appears more than once")
        seen_ranks.add(row.rank)

        if row.lower_bound < 0:
            errors.append(f"Rank {row.rank}: lower bound must be non-negative")
        if row.lower_bound >= row.upper_bound:
            errors.append(f"Rank {row.rank}: lower bound must be below upper bound")

        if previous is not None:
            if row.lower_bound < previous.lower_bound:
                errors.append(f"Rank {row.rank}: rows are not sorted by lower bound")
            elif row.lower_bound < previous.upper_bound:
                errors.append(f"Rank {row.rank}: overlaps rank {previous.rank}")
            elif row.lower_bound > previous.upper_bound:
                errors.append(f"Rank {row.rank}: gap after rank {previous.rank}")
        previous = row

    return errors


def grade_table_from_rows(rows: List[Dict]) -> List[GradeTableRow]:
    """
    Build grade table rows from config or CSV dictionaries.

    Each dictionary needs 'rank', 'lower', 'upper' and 'standard'.

    Raises:
        ValueError: If a row is missing a field or holds a non-numeric value
    """
    table = []
    for index, row in enumerate(rows, start=1):
        try:
            table.append(GradeTableRow(
                rank=int(row['rank']),
                lower_bound=Decimal(str(row['lower'])),
                upper_bound=Decimal(str(row['upper'])),
                standard_value=Decimal(str(row['standard'])),
            ))
        except KeyError as e:
            raise ValueError(f"grade_table row {index} is missing {e}")
        except (InvalidOperation, TypeError, ValueError):
            raise ValueError(f"grade_table row {index} must hold numeric values")
    return sorted(table, key=lambda r: r.lower_bound)
