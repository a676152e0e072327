"""Tests for CNF conversion and the CPMpy-backed satisfiability checks."""

import pytest

from cnf_oracle import (
    AUX_PREFIX,
    Cnf,
    ConversionError,
    CpmpyOracle,
    Literal,
    SolverError,
    fold_constants,
)
from formula import FALSE, TRUE, and_, not_, or_, var


@pytest.fixture
def oracle():
    return CpmpyOracle()


def test_fold_constants_removes_true_and_false():
    assert fold_constants(or_(not_("ALPHA"), TRUE)) == TRUE
    assert fold_constants(and_("ALPHA", not_(TRUE))) == FALSE
    assert fold_constants(and_("ALPHA", TRUE)) == var("ALPHA")
    assert fold_constants(not_(not_("ALPHA"))) == var("ALPHA")


def test_constants_convert_to_trivial_cnfs(oracle):
    assert oracle.convert(TRUE).is_empty
    assert oracle.convert(FALSE).has_empty_clause
    assert oracle.convert(or_(not_("ALPHA"), TRUE)).is_empty


def test_clausal_formula_is_kept_verbatim(oracle):
    model = and_(or_(not_("ALPHA"), "BETA"), or_("ALPHA", not_("BETA")))
    cnf = oracle.convert(model)

    assert cnf.clauses == (
        (Literal("ALPHA", True), Literal("BETA")),
        (Literal("ALPHA"), Literal("BETA", True)),
    )
    assert cnf.variable_names() == {"ALPHA", "BETA"}


def test_non_clausal_formula_uses_fresh_auxiliary_variables(oracle):
    cnf = oracle.convert(or_(and_("ALPHA", "BETA"), "GAMMA"))
    aux_names = {name for name in cnf.variable_names() if name.startswith(AUX_PREFIX)}

    assert len(aux_names) >= 1
    assert {"ALPHA", "BETA", "GAMMA"} <= cnf.variable_names()

    # A second conversion never reuses auxiliary names
    other = oracle.convert(or_(and_("ALPHA", "BETA"), "GAMMA"))
    other_aux = {name for name in other.variable_names() if name.startswith(AUX_PREFIX)}
    assert aux_names.isdisjoint(other_aux)


def test_reserved_auxiliary_names_are_rejected(oracle):
    with pytest.raises(ConversionError):
        oracle.convert(or_(not_(f"{AUX_PREFIX}1"), "BETA"))
    with pytest.raises(ConversionError):
        oracle.convert(and_("ALPHA", or_(f"{AUX_PREFIX}7", and_("BETA", "GAMMA"))))


def test_long_formulas_convert(oracle):
    chain = and_(*[or_(not_(f"V{i}"), f"V{i + 1}") for i in range(5000)])

    cnf = oracle.convert(chain)
    assert len(cnf) == 5000
    assert cnf.clauses[0] == (Literal("V0", True), Literal("V1"))

    # One auxiliary per clause (3 clauses each), one for the conjunction
    # (5001 clauses) and the unit clause asserting its negation
    negated = oracle.convert(not_(chain))
    assert len(negated) == 4 * 5000 + 2

    negations = var("ALPHA")
    for _ in range(3000):
        negations = not_(negations)
    assert fold_constants(negations) == var("ALPHA")
    assert fold_constants(and_(*[f"V{i}" for i in range(3000)], FALSE)) == FALSE


def test_as_formula_round_trips_clauses():
    cnf = Cnf(((Literal("ALPHA", True), Literal("BETA")), (Literal("GAMMA"),)))
    assert str(cnf.as_formula()) == "(!ALPHA || BETA) && GAMMA"
    assert Cnf(()).as_formula() == TRUE
    assert Cnf(((),)).as_formula() == FALSE


def test_satisfiability_of_model_and_extra(oracle):
    model = oracle.convert(or_(not_("ALPHA"), "BETA"))  # ALPHA => BETA

    assert oracle.is_satisfiable(model, oracle.convert(and_("ALPHA", "BETA")))
    assert not oracle.is_satisfiable(model, oracle.convert(and_("ALPHA", not_("BETA"))))


def test_negated_model_is_satisfiable_exactly_outside_the_model(oracle):
    constraint = or_(not_("ALPHA"), "BETA")
    negated = oracle.convert(not_(constraint))

    assert oracle.is_satisfiable(negated, oracle.convert(and_("ALPHA", not_("BETA"))))
    assert not oracle.is_satisfiable(negated, oracle.convert(var("BETA")))


def test_trivial_cases_do_not_need_a_solver(oracle):
    assert oracle.is_satisfiable(Cnf(()), Cnf(()))
    assert not oracle.is_satisfiable(Cnf(()), Cnf(((),)))
    assert not oracle.is_satisfiable(Cnf(((),)), oracle.convert(var("ALPHA")))


def test_max_clauses_raises_conversion_error():
    oracle = CpmpyOracle(max_clauses=2)
    with pytest.raises(ConversionError):
        oracle.convert(and_("ALPHA", "BETA", "GAMMA"))


def test_solver_failure_is_reported_as_solver_error():
    oracle = CpmpyOracle(solver="no_such_solver")
    cnf = oracle.convert(or_("ALPHA", "BETA"))
    with pytest.raises(SolverError):
        oracle.is_satisfiable(cnf, Cnf(()))
