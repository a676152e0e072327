"""
Variability model: known variable names plus the model constraint.

Models are typically read from DIMACS files where ``c <index> <NAME>``
comment lines map solver indices to configuration variable names, e.g.::

    c 1 ALPHA
    c 2 BETA
    p cnf 2 1
    -1 2 0
"""

import logging
import os
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Optional

from formula import FALSE, TRUE, Conjunction, Disjunction, Formula, Negation, Variable

logger = logging.getLogger(__name__)


class ModelSetupError(Exception):
    """The variability model is missing or unusable; the whole run is aborted."""


@dataclass(frozen=True)
class VariabilityModel:
    known_variables: FrozenSet[str]
    constraint: Formula

    def __post_init__(self):
        object.__setattr__(self, "known_variables", frozenset(self.known_variables))


def _clauses_to_formula(clauses: List[List[Formula]]) -> Formula:
    if not clauses:
        return TRUE
    result = None
    for literals in clauses:
        if not literals:
            return FALSE
        clause = literals[0]
        for literal in literals[1:]:
            clause = Disjunction(clause, literal)
        result = clause if result is None else Conjunction(result, clause)
    return result


def load_dimacs(path: str, variables: Optional[Iterable[str]] = None) -> VariabilityModel:
    """
    Load a DIMACS CNF file as a variability model.

    Args:
        path: DIMACS file
        variables: Known variable names; defaults to the names mapped in
            the file's ``c <index> <NAME>`` comments

    Raises:
        ModelSetupError: file missing or malformed
    """
    if not os.path.exists(path):
        raise ModelSetupError(f"Variability model file does not exist: {path}")

    names: Dict[int, str] = {}
    clauses: List[List[int]] = []
    current: List[int] = []

    with open(path, "r") as f:
        for line_no, raw in enumerate(f, start=1):
            line = raw.strip()
            if not line or line.startswith("%"):
                continue
            if line.startswith("c"):
                parts = line.split()
                # Only "c <index> <NAME>" lines carry a mapping
                if len(parts) >= 3 and parts[1].lstrip("-").isdigit():
                    names[abs(int(parts[1]))] = parts[2]
                continue
            if line.startswith("p"):
                parts = line.split()
                if len(parts) < 4 or parts[1] != "cnf":
                    raise ModelSetupError(f"{path}:{line_no}: malformed problem line {line!r}")
                continue
            try:
                numbers = [int(token) for token in line.split()]
            except ValueError:
                raise ModelSetupError(f"{path}:{line_no}: malformed clause {line!r}")
            for number in numbers:
                if number == 0:
                    clauses.append(current)
                    current = []
                else:
                    current.append(number)

    if current:
        clauses.append(current)

    def literal(number: int) -> Formula:
        index = abs(number)
        node = Variable(names.get(index, f"VARIABLE_{index}"))
        return Negation(node) if number < 0 else node

    constraint = _clauses_to_formula([[literal(n) for n in clause] for clause in clauses])
    known = frozenset(variables) if variables is not None else frozenset(names.values())

    logger.info(f"Loaded variability model {os.path.basename(path)}: "
                f"{len(known)} variables, {len(clauses)} clauses")
    return VariabilityModel(known, constraint)
