"""
Tabular views of a prediction for downstream reporting or ML.

pool_records() lists every ranked candidate. stage_records() lists every
cascade stage with its energy decomposition. With pandas installed, both
return a DataFrame; otherwise they return a list of dicts with the same
columns.

  pip install backbone-fold[grading]   # optional pandas
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Union

# Optional pandas for DataFrame export
try:
    import pandas as pd
    _HAS_PANDAS = True
except ImportError:
    pd = None  # type: ignore
    _HAS_PANDAS = False


def _frame(rows: List[Dict[str, Any]]) -> Union[List[Dict[str, Any]], "pd.DataFrame"]:
    if _HAS_PANDAS:
        return pd.DataFrame(rows)
    return rows


def pool_records(pool: Iterable) -> Union[List[Dict[str, Any]], "pd.DataFrame"]:
    """One row per candidate in rank order: rank, origin, index, energy."""
    ranked = pool.ranked() if hasattr(pool, "ranked") else sorted(pool, key=lambda c: c.sort_key)
    rows = [
        {
            "rank": r,
            "origin": c.origin,
            "index": c.index,
            "energy": float("nan") if c.energy is None else float(c.energy),
        }
        for r, c in enumerate(ranked)
    ]
    return _frame(rows)


def stage_records(stage_trace: Iterable) -> Union[List[Dict[str, Any]], "pd.DataFrame"]:
    """One row per cascade stage: name, energies in/out, accepted/skipped, components."""
    rows = []
    for rec in stage_trace:
        row: Dict[str, Any] = {
            "candidate": getattr(rec, "candidate", None),
            "stage": rec.name,
            "e_in": rec.e_in,
            "e_out": rec.e_out,
            "accepted": rec.accepted,
            "skipped": rec.skipped,
            "n_iter": rec.info.get("n_iter", 0),
        }
        if rec.components is not None:
            row.update({f"e_{k}": v for k, v in rec.components.as_dict().items()})
        rows.append(row)
    return _frame(rows)


def has_pandas() -> bool:
    return _HAS_PANDAS
