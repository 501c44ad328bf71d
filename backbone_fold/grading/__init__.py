"""
Grading: similarity of a prediction to a reference, and tabular reports.

Core (numpy only):
  rmsd(a, b), tm_score(a, b), gdt_ts(a, b), compare_structures(pred, ref)

With optional pandas: pool_records / stage_records return DataFrames.
"""

from __future__ import annotations

from .report import pool_records, stage_records
from .similarity import (
    StructureComparison,
    compare_structures,
    gdt_ts,
    kabsch_superpose,
    rmsd,
    tm_score,
)

__all__ = [
    "StructureComparison",
    "compare_structures",
    "gdt_ts",
    "kabsch_superpose",
    "rmsd",
    "tm_score",
    "pool_records",
    "stage_records",
]
