from pathlib import Path

import pytest

from cnf_oracle import CpmpyOracle
from mismatch_detector import ConfigMismatchDetector, DetectorConfig
from variability_model import load_dimacs

TESTDATA = Path(__file__).resolve().parent / "testdata"


@pytest.fixture
def testdata() -> Path:
    return TESTDATA


@pytest.fixture
def load_model():
    """Load one of the ALPHA/BETA/GAMMA DIMACS fixtures by file stem."""

    def _load(name: str):
        return load_dimacs(str(TESTDATA / f"{name}.cnf"))

    return _load


@pytest.fixture
def detector():
    """Detailed detector backed by CPMpy."""
    return ConfigMismatchDetector(CpmpyOracle(), DetectorConfig(progress_interval=0))


@pytest.fixture
def simple_detector():
    return ConfigMismatchDetector(CpmpyOracle(), DetectorConfig(detailed=False, progress_interval=0))


@pytest.fixture
def write_chain_model(tmp_path):
    """Write a DIMACS model V1 => V2 => ... => V<n+1> made of ``n`` clauses."""

    def _write(clauses: int) -> Path:
        path = tmp_path / f"chain_{clauses}.cnf"
        lines = [f"c {i} V{i}" for i in range(1, clauses + 2)]
        lines.append(f"p cnf {clauses + 1} {clauses}")
        lines.extend(f"-{i} {i + 1} 0" for i in range(1, clauses + 1))
        path.write_text("\n".join(lines) + "\n")
        return path

    return _write
