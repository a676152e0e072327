"""
Feature effects: the minimal precondition under which a variable's code has an effect.

Effects are exchanged as ``;``-separated CSV files with the header
``Variable;Feature Effect``; the formula column uses the syntax of
``formula.render``.
"""

import csv
import logging
from dataclasses import dataclass
from typing import Iterable, Iterator

from formula import Formula, FormulaSyntaxError, parse_formula

logger = logging.getLogger(__name__)

VARIABLE_COLUMN = "Variable"
EFFECT_COLUMN = "Feature Effect"


@dataclass(frozen=True)
class FeatureEffect:
    variable: str
    effect: Formula


def read_feature_effects(path: str, delimiter: str = ";") -> Iterator[FeatureEffect]:
    """Lazily yield one FeatureEffect per CSV row."""
    with open(path, "r", newline="") as f:
        reader = csv.DictReader(f, delimiter=delimiter)
        missing = {VARIABLE_COLUMN, EFFECT_COLUMN} - set(reader.fieldnames or [])
        if missing:
            raise ValueError(f"{path}: missing column(s) {sorted(missing)}")

        for row in reader:
            variable = (row[VARIABLE_COLUMN] or "").strip()
            if not variable:
                continue
            try:
                effect = parse_formula(row[EFFECT_COLUMN] or "")
            except FormulaSyntaxError as e:
                raise FormulaSyntaxError(
                    f"{path}:{reader.line_num}: bad feature effect for {variable}: {e}") from e
            yield FeatureEffect(variable, effect)


def write_feature_effects(effects: Iterable[FeatureEffect], path: str, delimiter: str = ";") -> int:
    count = 0
    with open(path, "w", newline="") as f:
        writer = csv.writer(f, delimiter=delimiter)
        writer.writerow([VARIABLE_COLUMN, EFFECT_COLUMN])
        for fe in effects:
            writer.writerow([fe.variable, str(fe.effect)])
            count += 1
    logger.info(f"Wrote {count} feature effects to {path}")
    return count
