"""Tests for loading DIMACS variability models."""

import pytest

from formula import TRUE, negated_variables
from variability_model import ModelSetupError, VariabilityModel, load_dimacs


def test_load_dimacs_maps_indices_to_names(load_model):
    vm = load_model("ANestedInB")

    assert vm.known_variables == {"ALPHA", "BETA", "GAMMA"}
    assert str(vm.constraint) == "!ALPHA || BETA"


def test_load_dimacs_builds_conjunction_of_clauses(load_model):
    vm = load_model("AEqualsB")
    assert str(vm.constraint) == "(!ALPHA || BETA) && (ALPHA || !BETA)"


def test_explicit_variables_override_mapping(testdata):
    vm = load_dimacs(str(testdata / "NotAAndB.cnf"), variables=["ALPHA", "BETA"])
    assert vm.known_variables == frozenset({"ALPHA", "BETA"})


def test_unmapped_indices_get_generated_names(tmp_path):
    path = tmp_path / "unmapped.cnf"
    path.write_text("c 1 ALPHA\np cnf 2 1\n1 -2 0\n")

    vm = load_dimacs(str(path))

    assert str(vm.constraint) == "ALPHA || !VARIABLE_2"
    assert vm.known_variables == {"ALPHA"}


def test_missing_file_is_a_setup_error(tmp_path):
    with pytest.raises(ModelSetupError):
        load_dimacs(str(tmp_path / "missing.cnf"))


def test_malformed_clause_is_a_setup_error(tmp_path):
    path = tmp_path / "broken.cnf"
    path.write_text("c 1 ALPHA\np cnf 1 1\n1 x 0\n")
    with pytest.raises(ModelSetupError):
        load_dimacs(str(path))


def test_model_is_immutable(load_model):
    vm = load_model("ANestedInB")
    assert isinstance(vm.known_variables, frozenset)
    with pytest.raises(AttributeError):
        vm.constraint = None


def test_known_variables_are_frozen_on_construction():
    vm = VariabilityModel({"ALPHA"}, TRUE)
    assert vm.known_variables == frozenset({"ALPHA"})


def test_large_model_loads(write_chain_model):
    vm = load_dimacs(str(write_chain_model(3000)))

    assert len(vm.known_variables) == 3001
    assert str(vm.constraint).startswith("(!V1 || V2) && (!V2 || V3) && ")
    assert negated_variables(vm.constraint) == {f"V{i}" for i in range(1, 3001)}
