"""
Unit tests for ranking and decoding measurement histograms.
"""

import pytest

from qaoa_core.backends.backend_base import ExecutionResult
from qaoa_core.errors import EncodingError
from qaoa_core.problems.qubo_encoder import QuboEncoder, Variable
from qaoa_core.solvers.solution_decoder import SolutionDecoder


@pytest.fixture
def color_encoding():
    return QuboEncoder().encode([Variable.categorical(0, "color", ["red", "green", "blue"])])


class TestSolutionDecoder:
    """Test SolutionDecoder ranking and validity reporting."""

    def test_ranking_success(self, color_encoding):
        """Test candidates sort by cost, then by count, then by bitstring."""
        ranked = SolutionDecoder().decode({"110": 3, "100": 5, "000": 2, "010": 1}, color_encoding)

        assert [c.bitstring for c in ranked.candidates] == ["100", "010", "110", "000"]
        assert [c.energy for c in ranked.candidates] == [0.0, 0.0, 1.0, 1.0]
        assert ranked.best_valid.bitstring == "100"
        assert ranked.best_valid.values == {"color": "red"}
        assert ranked.best_overall is ranked.candidates[0]
        assert ranked.total_shots == 11
        assert ranked.valid_fraction == pytest.approx(6 / 11)
        assert [c.bitstring for c in ranked.valid_candidates] == ["100", "010"]
        assert [c.bitstring for c in ranked.top(1)] == ["100"]

    def test_candidate_fields(self, color_encoding):
        """Test frequency, bits and decoded values of a candidate."""
        ranked = SolutionDecoder().decode({"001": 3, "011": 1}, color_encoding)
        best = ranked.candidates[0]

        assert best.bitstring == "001"
        assert best.frequency == pytest.approx(0.75)
        assert best.bits == [0, 0, 1]
        assert best.valid
        assert best.decoded.values["color"].value == "blue"

    def test_no_valid_candidate(self, color_encoding):
        """Test invalid-only histograms keep a best overall but no best valid."""
        ranked = SolutionDecoder().decode({"110": 4, "111": 1}, color_encoding)

        assert ranked.best_valid is None
        assert ranked.best_overall.bitstring == "110"
        assert not ranked.best_overall.valid
        assert ranked.best_overall.values == {"color": None}
        assert ranked.valid_fraction == 0.0

    def test_execution_result_input(self, color_encoding):
        """Test an ExecutionResult is accepted directly."""
        result = ExecutionResult(counts={"010": 7}, shots=7, num_qubits=3, backend_name="test")
        ranked = SolutionDecoder().decode(result, color_encoding)

        assert ranked.best_valid.values == {"color": "green"}
        assert ranked.valid_fraction == 1.0

    def test_empty_histogram(self, color_encoding):
        """Test an empty histogram yields no candidates."""
        ranked = SolutionDecoder().decode({}, color_encoding)

        assert ranked.candidates == []
        assert ranked.best_overall is None
        assert ranked.valid_fraction == 0.0

    def test_decode_failure(self, color_encoding):
        """Test bitstrings of the wrong width are rejected."""
        with pytest.raises(EncodingError, match="encoding uses 3 qubits"):
            SolutionDecoder().decode({"10": 1}, color_encoding)
