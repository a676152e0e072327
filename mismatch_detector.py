"""
Configuration Mismatch Detection
================================

Compares the feature effect of every variable (the precondition extracted
from code under which the variable has any effect) with the variability
model. For a variable ``v`` with feature effect ``E`` the implication
``I = !v || E`` is checked against the model constraint ``M``:

    p2 = SAT(M && I)     common part of model and implication
    p1 = SAT(M && !I)    model allows states violating the implication
    p3 = SAT(!M && I)    implication holds outside the model

    p2 false                -> CONTRADICTION
    p1 false, p3 false      -> CONSISTENT
    p1 true,  p3 false      -> VM_MORE_GENERAL
    p1 false, p3 true       -> FORMULA_MORE_GENERAL
    p1 true,  p3 true       -> PARTIAL_OVERLAP

Two corrections refine this table:

1. Partial overlap that is only satisfiable with ``v`` deselected
   (SAT(M && v && I) is false) becomes PARTIAL_OVERLAP_DEAD.
2. A feature effect of TRUE cannot be told apart from a tautological model
   by the SAT checks; if ``v`` never occurs as a negative literal of the
   model in negation normal form (it is on no implication's left side)
   the result is CONSISTENT.

The table assumes the model has no dead or always-selected features.

With ``DetectorConfig(detailed=False)`` only SAT(M && v && !E) is checked
and the result is CONSISTENT or CONFLICT_WITH_VARMODEL.
"""

import logging
import threading
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Iterable, Iterator, List, Optional

from cnf_oracle import Cnf, CnfOracle, ConversionError, SolverError
from feature_effects import FeatureEffect
from formula import (
    Conjunction,
    Disjunction,
    Formula,
    Negation,
    Variable,
    free_variables,
    is_true,
    negated_variables,
)
from variability_model import ModelSetupError, VariabilityModel

module_logger = logging.getLogger(__name__)


class MismatchCategory(Enum):
    """Resolution of a single feature effect against the variability model."""
    CONSISTENT = "Consistent"
    CONTRADICTION = "Contradiction"
    VM_MORE_GENERAL = "VarModel more general"
    FORMULA_MORE_GENERAL = "Formula more general"
    PARTIAL_OVERLAP = "Partial overlap"
    PARTIAL_OVERLAP_DEAD = "Partial overlap (only with variable deselected)"
    CONFLICT_WITH_VARMODEL = "Conflicts with VarModel"
    VARIABLE_NOT_DEFINED = "Variable not defined in VarModel"
    FORMULA_NOT_SUPPORTED = "Formula contains undefined Variables"
    ERROR = "Unexpected error occured."

    @property
    def description(self) -> str:
        return self.value


@dataclass(frozen=True)
class ClassificationResult:
    variable: str
    effect: Formula
    category: MismatchCategory


@dataclass
class DetectorConfig:
    """Configuration for the mismatch detector."""
    detailed: bool = True  # False = CONSISTENT / CONFLICT_WITH_VARMODEL only
    workers: int = 1  # >1 classifies records on a thread pool
    progress_interval: int = 100  # Log progress every N records (0 = only at the end)


@dataclass(frozen=True)
class PreparedModel:
    """Model converted once per run; shared read-only by all records."""
    known_variables: FrozenSet[str]
    cnf: Cnf
    negated_cnf: Optional[Cnf]
    negated_variables: FrozenSet[str]  # negative literals of the model constraint


class ProgressLogger:
    """Counts processed records and periodically logs throughput."""

    def __init__(self, name: str, log: logging.Logger, interval: int = 100):
        self.name = name
        self.log = log
        self.interval = interval
        self.processed = 0
        self.start_time = time.time()

    def processed_one(self):
        self.processed += 1
        if self.interval > 0 and self.processed % self.interval == 0:
            elapsed = time.time() - self.start_time
            self.log.info(f"{self.name}: processed {self.processed} records ({elapsed:.1f}s)")

    def close(self):
        elapsed = time.time() - self.start_time
        self.log.info(f"{self.name}: finished, {self.processed} records in {elapsed:.2f}s")


class ConfigMismatchDetector:
    """
    Classifies feature effects against a variability model.

    Args:
        oracle: CNF conversion and SAT capabilities
        config: Detector configuration
        logger: Logger used for errors and progress (defaults to module logger)
    """

    def __init__(self, oracle: CnfOracle, config: Optional[DetectorConfig] = None,
                 logger: Optional[logging.Logger] = None):
        self.oracle = oracle
        self.config = config or DetectorConfig()
        self.logger = logger if logger is not None else module_logger
        self._cancelled = threading.Event()

    def cancel(self):
        """Stop pulling records; the record in progress is still emitted."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    # ------------------------------------------------------------------
    # Model setup
    # ------------------------------------------------------------------

    def prepare(self, vm: Optional[VariabilityModel]) -> PreparedModel:
        """
        Convert the model (and, in detailed mode, its negation) to CNF.

        Raises:
            ModelSetupError: no model, or its constraint cannot be converted
        """
        if vm is None:
            self.logger.error("Couldn't get variability model.")
            raise ModelSetupError("No variability model available")

        try:
            cnf = self.oracle.convert(vm.constraint)
        except ConversionError as e:
            self.logger.error(f"Can't convert variability model to CNF: {e}")
            raise ModelSetupError(f"Can't convert variability model to CNF: {e}") from e

        negated_cnf = None
        if self.config.detailed:
            try:
                negated_cnf = self.oracle.convert(Negation(vm.constraint))
            except ConversionError as e:
                self.logger.error(f"Could not convert negated variability model to CNF: {e}")
                raise ModelSetupError(f"Could not convert negated variability model to CNF: {e}") from e

        return PreparedModel(vm.known_variables, cnf, negated_cnf,
                             frozenset(negated_variables(vm.constraint)))

    # ------------------------------------------------------------------
    # Per-record classification
    # ------------------------------------------------------------------

    @staticmethod
    def validate(known_variables: FrozenSet[str], fe: FeatureEffect) -> Optional[MismatchCategory]:
        """Return a validation category, or None if the record can be decided."""
        if fe.variable not in known_variables:
            return MismatchCategory.VARIABLE_NOT_DEFINED
        if not free_variables(fe.effect) <= known_variables:
            return MismatchCategory.FORMULA_NOT_SUPPORTED
        return None

    def classify(self, prepared: PreparedModel, fe: FeatureEffect) -> ClassificationResult:
        category = self.validate(prepared.known_variables, fe)
        if category is None:
            try:
                if self.config.detailed:
                    category = self._decide(prepared, fe.variable, fe.effect)
                else:
                    category = self._decide_simple(prepared, fe.variable, fe.effect)
            except ConversionError as e:
                category = MismatchCategory.ERROR
                self.logger.error(f"Could not translate feature effect constraint for variable: "
                                  f"{fe.variable}, reason: {e}")
            except SolverError as e:
                category = MismatchCategory.ERROR
                self.logger.error(f"Could not solve feature effect constraint for variable: "
                                  f"{fe.variable}, reason: {e}")
        return ClassificationResult(fe.variable, fe.effect, category)

    def _decide(self, prepared: PreparedModel, variable: str, effect: Formula) -> MismatchCategory:
        oracle = self.oracle
        selected = Variable(variable)
        implication = Disjunction(Negation(selected), effect)
        implication_cnf = oracle.convert(implication)
        violation_cnf = oracle.convert(Conjunction(selected, Negation(effect)))

        if not oracle.is_satisfiable(prepared.cnf, implication_cnf):
            return MismatchCategory.CONTRADICTION

        vm_more_general = oracle.is_satisfiable(prepared.cnf, violation_cnf)
        effect_more_general = oracle.is_satisfiable(prepared.negated_cnf, implication_cnf)

        if vm_more_general and effect_more_general:
            # Overlap that exists only while the variable is deselected
            active_cnf = oracle.convert(Conjunction(selected, implication))
            if not oracle.is_satisfiable(prepared.cnf, active_cnf):
                return MismatchCategory.PARTIAL_OVERLAP_DEAD
            return MismatchCategory.PARTIAL_OVERLAP

        if vm_more_general:
            return MismatchCategory.VM_MORE_GENERAL

        if effect_more_general:
            if is_true(effect) and variable not in prepared.negated_variables:
                return MismatchCategory.CONSISTENT
            return MismatchCategory.FORMULA_MORE_GENERAL

        return MismatchCategory.CONSISTENT

    def _decide_simple(self, prepared: PreparedModel, variable: str, effect: Formula) -> MismatchCategory:
        violation_cnf = self.oracle.convert(Conjunction(Variable(variable), Negation(effect)))
        if self.oracle.is_satisfiable(prepared.cnf, violation_cnf):
            return MismatchCategory.CONFLICT_WITH_VARMODEL
        return MismatchCategory.CONSISTENT

    # ------------------------------------------------------------------
    # Stream orchestration
    # ------------------------------------------------------------------

    def run(self, vm: Optional[VariabilityModel],
            effects: Iterable[FeatureEffect]) -> Iterator[ClassificationResult]:
        """
        Yield one ClassificationResult per feature effect, in input order.

        The model is prepared before the first record is pulled; a
        ModelSetupError therefore leaves ``effects`` untouched.
        """
        prepared = self.prepare(vm)
        progress = ProgressLogger(type(self).__name__, self.logger, self.config.progress_interval)

        if self.config.workers > 1:
            results = self._run_parallel(prepared, effects)
        else:
            results = self._run_sequential(prepared, effects)

        for result in results:
            yield result
            progress.processed_one()

        if self.cancelled:
            self.logger.warning(f"Run cancelled after {progress.processed} records")
        progress.close()

    def _run_sequential(self, prepared: PreparedModel,
                        effects: Iterable[FeatureEffect]) -> Iterator[ClassificationResult]:
        iterator = iter(effects)
        while not self.cancelled:
            try:
                fe = next(iterator)
            except StopIteration:
                return
            yield self.classify(prepared, fe)

    def _run_parallel(self, prepared: PreparedModel,
                      effects: Iterable[FeatureEffect]) -> Iterator[ClassificationResult]:
        iterator = iter(effects)
        exhausted = False
        window = self.config.workers * 2
        with ThreadPoolExecutor(max_workers=self.config.workers) as executor:
            pending = deque()
            while True:
                while not exhausted and not self.cancelled and len(pending) < window:
                    try:
                        fe = next(iterator)
                    except StopIteration:
                        exhausted = True
                        break
                    pending.append(executor.submit(self.classify, prepared, fe))
                if not pending:
                    return
                yield pending.popleft().result()

    def detect(self, vm: Optional[VariabilityModel],
               effects: Iterable[FeatureEffect]) -> List[ClassificationResult]:
        """Run to completion and collect all results."""
        return list(self.run(vm, effects))
