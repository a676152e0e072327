"""
Result tables for configuration mismatch runs.

Table Columns:
- Variable: Configuration variable the feature effect belongs to
- Feature Effect: Precondition extracted from code
- Resolution: Mismatch category description
"""

import logging
import os
from typing import Dict, Iterable, List

import pandas as pd

from mismatch_detector import ClassificationResult, MismatchCategory

logger = logging.getLogger(__name__)

RESULT_COLUMNS = ["Variable", "Feature Effect", "Resolution"]


def results_to_frame(results: Iterable[ClassificationResult]) -> pd.DataFrame:
    rows = [
        {
            "Variable": r.variable,
            "Feature Effect": str(r.effect),
            "Resolution": r.category.description,
        }
        for r in results
    ]
    return pd.DataFrame(rows, columns=RESULT_COLUMNS)


def only_mismatches(results: Iterable[ClassificationResult]) -> List[ClassificationResult]:
    """Drop CONSISTENT results, keeping the order of the rest."""
    return [r for r in results if r.category != MismatchCategory.CONSISTENT]


def summarize(results: Iterable[ClassificationResult]) -> pd.DataFrame:
    """Count results per category; every category is listed, in declaration order."""
    counts = {category: 0 for category in MismatchCategory}
    for r in results:
        counts[r.category] += 1
    return pd.DataFrame(
        [{"Category": c.name, "Resolution": c.description, "Count": n} for c, n in counts.items()],
        columns=["Category", "Resolution", "Count"],
    )


def save_results(df: pd.DataFrame, output_dir: str = "results",
                 name: str = "config_mismatches") -> Dict[str, str]:
    """Save a results table to CSV, JSON, and text files."""
    os.makedirs(output_dir, exist_ok=True)

    paths = {
        "csv": os.path.join(output_dir, f"{name}.csv"),
        "json": os.path.join(output_dir, f"{name}.json"),
        "txt": os.path.join(output_dir, f"{name}.txt"),
    }

    df.to_csv(paths["csv"], index=False, sep=";")
    df.to_json(paths["json"], orient="records", indent=2)
    with open(paths["txt"], "w") as f:
        f.write(df.to_string(index=False) if not df.empty else "(no results)")
        f.write("\n")

    for kind, path in paths.items():
        logger.info(f"[SAVED] {kind.upper()}: {path}")
    return paths
