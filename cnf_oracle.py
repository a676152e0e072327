"""
CNF Oracle
==========

Narrow interface between the mismatch detector and the satisfiability
machinery:

- ``convert(formula)``: formula -> CNF (may raise ConversionError)
- ``is_satisfiable(base, extra)``: SAT(base AND extra) (may raise SolverError)

``CpmpyOracle`` is the concrete implementation. Clausal conjuncts are kept
verbatim, everything else is Tseitin-encoded with auxiliary variables named
``__aux_<n>``; that prefix is reserved. Satisfiability is delegated to CPMpy.
"""

import itertools
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, Tuple

import cpmpy as cp
from cpmpy.solvers.solver_interface import ExitStatus

from formula import (
    FALSE,
    TRUE,
    Conjunction,
    Constant,
    Disjunction,
    Formula,
    Negation,
    Variable,
    free_variables,
)

logger = logging.getLogger(__name__)

AUX_PREFIX = "__aux_"


class OracleError(Exception):
    """Base class for failures of the CNF oracle."""


class ConversionError(OracleError):
    """A formula could not be converted into CNF."""


class SolverError(OracleError):
    """A satisfiability query failed or did not finish."""


@dataclass(frozen=True)
class Literal:
    name: str
    negated: bool = False

    def flipped(self) -> "Literal":
        return Literal(self.name, not self.negated)

    def __str__(self):
        return f"!{self.name}" if self.negated else self.name


Clause = Tuple[Literal, ...]


@dataclass(frozen=True)
class Cnf:
    """Conjunction of clauses; a clause is a disjunction of literals."""
    clauses: Tuple[Clause, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.clauses

    @property
    def has_empty_clause(self) -> bool:
        return any(len(clause) == 0 for clause in self.clauses)

    def variable_names(self) -> FrozenSet[str]:
        return frozenset(literal.name for clause in self.clauses for literal in clause)

    def as_formula(self) -> Formula:
        if self.is_empty:
            return TRUE
        if self.has_empty_clause:
            return FALSE
        result = None
        for clause in self.clauses:
            disjunction = None
            for literal in clause:
                node = Variable(literal.name)
                if literal.negated:
                    node = Negation(node)
                disjunction = node if disjunction is None else Disjunction(disjunction, node)
            result = disjunction if result is None else Conjunction(result, disjunction)
        return result

    def __len__(self):
        return len(self.clauses)

    def __str__(self):
        return " & ".join("(" + " | ".join(str(lit) for lit in clause) + ")" for clause in self.clauses)


class CnfOracle(ABC):
    """Conversion and satisfiability capabilities consumed by the detector."""

    @abstractmethod
    def convert(self, formula: Formula) -> Cnf:
        pass

    @abstractmethod
    def is_satisfiable(self, base: Cnf, extra: Cnf) -> bool:
        pass


# ============================================================================
# Conversion helpers
# ============================================================================

def _fold_negation(operand: Formula) -> Formula:
    if isinstance(operand, Constant):
        return FALSE if operand.value else TRUE
    if isinstance(operand, Negation):
        return operand.operand
    return Negation(operand)


def _fold_conjunction(left: Formula, right: Formula) -> Formula:
    if left == FALSE or right == FALSE:
        return FALSE
    if left == TRUE:
        return right
    if right == TRUE:
        return left
    return Conjunction(left, right)


def _fold_disjunction(left: Formula, right: Formula) -> Formula:
    if left == TRUE or right == TRUE:
        return TRUE
    if left == FALSE:
        return right
    if right == FALSE:
        return left
    return Disjunction(left, right)


def fold_constants(formula: Formula) -> Formula:
    """Eliminate TRUE/FALSE below the root and double negations."""
    folded: List[Formula] = []
    # Post-order walk; a node is pushed again with visited=True once its operands are queued
    stack = [(formula, False)]
    while stack:
        node, visited = stack.pop()
        if isinstance(node, (Variable, Constant)):
            folded.append(node)
        elif isinstance(node, Negation):
            if visited:
                folded.append(_fold_negation(folded.pop()))
            else:
                stack.append((node, True))
                stack.append((node.operand, False))
        elif isinstance(node, (Conjunction, Disjunction)):
            if visited:
                right = folded.pop()
                left = folded.pop()
                if isinstance(node, Conjunction):
                    folded.append(_fold_conjunction(left, right))
                else:
                    folded.append(_fold_disjunction(left, right))
            else:
                stack.append((node, True))
                stack.append((node.right, False))
                stack.append((node.left, False))
        else:
            raise ConversionError(f"Unknown formula node: {node!r}")
    return folded.pop()


def _flatten(formula: Formula, node_type) -> List[Formula]:
    operands = []
    stack = [formula]
    while stack:
        node = stack.pop()
        if isinstance(node, node_type):
            stack.append(node.right)
            stack.append(node.left)
        else:
            operands.append(node)
    return operands


def _as_literal(formula: Formula) -> Optional[Literal]:
    if isinstance(formula, Variable):
        return Literal(formula.name)
    if isinstance(formula, Negation) and isinstance(formula.operand, Variable):
        return Literal(formula.operand.name, True)
    return None


def _as_clause(formula: Formula) -> Optional[Clause]:
    literals = []
    for operand in _flatten(formula, Disjunction):
        literal = _as_literal(operand)
        if literal is None:
            return None
        literals.append(literal)
    return tuple(literals)


# ============================================================================
# CPMpy-backed oracle
# ============================================================================

class CpmpyOracle(CnfOracle):
    """
    CNF conversion plus CPMpy satisfiability checks.

    Args:
        solver: CPMpy solver name (None = CPMpy default, OR-Tools)
        time_limit: Per-query time limit in seconds (None = unlimited)
        max_clauses: Upper bound on the size of a single conversion result
    """

    def __init__(self, solver: Optional[str] = None, time_limit: Optional[float] = None,
                 max_clauses: Optional[int] = None):
        self.solver = solver
        self.time_limit = time_limit
        self.max_clauses = max_clauses
        self._aux_counter = itertools.count(1)
        self._aux_lock = threading.Lock()

    def _fresh_literal(self) -> Literal:
        with self._aux_lock:
            return Literal(f"{AUX_PREFIX}{next(self._aux_counter)}")

    def convert(self, formula: Formula) -> Cnf:
        try:
            names = free_variables(formula)
        except TypeError as e:
            raise ConversionError(str(e)) from e
        reserved = sorted(name for name in names if name.startswith(AUX_PREFIX))
        if reserved:
            raise ConversionError(f"Variable names use the reserved prefix {AUX_PREFIX!r}: "
                                  f"{', '.join(reserved)}")

        folded = fold_constants(formula)
        if folded == TRUE:
            return Cnf(())
        if folded == FALSE:
            return Cnf(((),))

        clauses: List[Clause] = []
        for conjunct in _flatten(folded, Conjunction):
            clause = _as_clause(conjunct)
            if clause is None:
                clause = (self._encode(conjunct, clauses),)
            clauses.append(clause)
            self._check_size(clauses)
        return Cnf(tuple(clauses))

    def _check_size(self, clauses: List[Clause]):
        if self.max_clauses is not None and len(clauses) > self.max_clauses:
            raise ConversionError(f"CNF exceeds {self.max_clauses} clauses")

    def _encode(self, formula: Formula, clauses: List[Clause]) -> Literal:
        """Tseitin encoding: returns a literal equivalent to ``formula``."""
        encoded: List[Literal] = []
        # (node, None) is still to be expanded; (node, n) combines its n encoded operands
        stack = [(formula, None)]
        while stack:
            node, arity = stack.pop()
            if arity is None:
                literal = _as_literal(node)
                if literal is not None:
                    encoded.append(literal)
                elif isinstance(node, Negation):
                    stack.append((node, 1))
                    stack.append((node.operand, None))
                elif isinstance(node, (Conjunction, Disjunction)):
                    operands = _flatten(node, type(node))
                    stack.append((node, len(operands)))
                    stack.extend((operand, None) for operand in reversed(operands))
                else:
                    raise ConversionError(f"Cannot encode formula node: {node!r}")
                continue

            if isinstance(node, Negation):
                encoded.append(encoded.pop().flipped())
                continue

            operands = encoded[-arity:]
            del encoded[-arity:]
            aux = self._fresh_literal()
            if isinstance(node, Conjunction):
                # aux -> each operand; all operands -> aux
                for operand in operands:
                    clauses.append((aux.flipped(), operand))
                clauses.append((aux,) + tuple(op.flipped() for op in operands))
            else:
                clauses.append((aux.flipped(),) + tuple(operands))
                for operand in operands:
                    clauses.append((aux, operand.flipped()))
            self._check_size(clauses)
            encoded.append(aux)
        return encoded.pop()

    def is_satisfiable(self, base: Cnf, extra: Cnf) -> bool:
        if base.has_empty_clause or extra.has_empty_clause:
            return False
        clauses = base.clauses + extra.clauses
        if not clauses:
            return True

        variables: Dict[str, object] = {}

        def to_cpm(literal: Literal):
            if literal.name not in variables:
                variables[literal.name] = cp.boolvar(name=literal.name)
            bv = variables[literal.name]
            return ~bv if literal.negated else bv

        try:
            model = cp.Model([cp.any([to_cpm(lit) for lit in clause]) for clause in clauses])
            flag = model.solve(solver=self.solver, time_limit=self.time_limit)
        except Exception as e:
            raise SolverError(f"{type(e).__name__}: {e}") from e

        if not flag and model.status().exitstatus == ExitStatus.UNKNOWN:
            raise SolverError(f"No answer within time limit of {self.time_limit}s "
                              f"({len(clauses)} clauses, {len(variables)} variables)")
        logger.debug(f"SAT query over {len(clauses)} clauses: {flag}")
        return bool(flag)
