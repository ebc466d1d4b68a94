"""
Unit tests for the circuits package: Hamiltonian construction and QAOA circuits.
"""

import itertools

import numpy as np
import pytest

from qaoa_core.circuits.hamiltonian import (
    PauliKind,
    PauliTerm,
    build_mixer_hamiltonian,
    build_problem_hamiltonian,
)
from qaoa_core.circuits.qaoa_circuit import (
    Circuit,
    Gate,
    GateKind,
    QaoaParameters,
    build_qaoa_circuit,
    expected_gate_count,
)
from qaoa_core.errors import EncodingError, InvalidArgument, UnsupportedGate
from qaoa_core.problems.qubo_model import QuboModel


@pytest.fixture
def random_qubo():
    rng = np.random.default_rng(5)
    return QuboModel.from_matrix(rng.normal(size=(4, 4)), offset=0.75)


@pytest.fixture
def edge_qubo():
    # MaxCut on a single unit edge: -x0 - x1 + 2 x0 x1
    return QuboModel.from_terms(2, [((0, 0), -1.0), ((1, 1), -1.0), ((0, 1), 2.0)])


class TestProblemHamiltonian:
    """Test QUBO to Ising conversion."""

    def test_energy_matches_qubo_success(self, random_qubo):
        """Test the Hamiltonian reproduces the QUBO energy of every basis state."""
        hamiltonian = build_problem_hamiltonian(random_qubo)

        for bits in itertools.product([0, 1], repeat=4):
            assert hamiltonian.energy(list(bits)) == pytest.approx(random_qubo.evaluate(list(bits)))

    def test_diagonal_matches_energy(self, random_qubo):
        """Test the diagonal is indexed with qubit q as bit q of the basis index."""
        hamiltonian = build_problem_hamiltonian(random_qubo)
        diagonal = hamiltonian.diagonal()

        for index in range(16):
            bits = [(index >> q) & 1 for q in range(4)]
            assert diagonal[index] == pytest.approx(hamiltonian.energy(bits))

    def test_single_edge_terms(self, edge_qubo):
        """Test -x0 - x1 + 2 x0 x1 maps to 0.5 Z0 Z1 - 0.5 with no local fields."""
        hamiltonian = build_problem_hamiltonian(edge_qubo)

        assert hamiltonian.z_terms == []
        assert len(hamiltonian.zz_terms) == 1
        assert hamiltonian.zz_terms[0].coefficient == pytest.approx(0.5)
        assert hamiltonian.zz_terms[0].qubits == (0, 1)
        assert hamiltonian.constant == pytest.approx(-0.5)
        assert hamiltonian.energy("10") == pytest.approx(-1.0)

    def test_expectation_uniform(self, edge_qubo):
        """Test the expectation over the uniform distribution is the mean energy."""
        hamiltonian = build_problem_hamiltonian(edge_qubo)

        assert hamiltonian.expectation(np.full(4, 0.25)) == pytest.approx(-0.5)

        with pytest.raises(EncodingError, match="Expected 4 probabilities"):
            hamiltonian.expectation([0.5, 0.5])

    def test_build_failure(self):
        """Test empty QUBOs and malformed Pauli terms are rejected."""
        with pytest.raises(EncodingError, match="no variables"):
            build_problem_hamiltonian(QuboModel(num_variables=0))

        with pytest.raises(EncodingError, match="same qubit"):
            PauliTerm(1.0, (2, 2), PauliKind.ZZ)

        with pytest.raises(EncodingError):
            PauliTerm(1.0, (0, 1), PauliKind.Z)

        with pytest.raises(EncodingError):
            build_mixer_hamiltonian(0)

    def test_energy_failure(self, edge_qubo):
        """Test basis states of the wrong width are rejected."""
        hamiltonian = build_problem_hamiltonian(edge_qubo)

        with pytest.raises(EncodingError, match="2 qubits"):
            hamiltonian.energy("101")


class TestQaoaCircuit:
    """Test the QAOA circuit builder."""

    @pytest.fixture
    def hamiltonians(self, random_qubo):
        return build_problem_hamiltonian(random_qubo), build_mixer_hamiltonian(4)

    def test_structure_success(self, hamiltonians):
        """Test the H layer, cost sublayer and mixer sublayer appear in order."""
        h_c, h_m = hamiltonians
        circuit = build_qaoa_circuit(h_c, h_m, [(0.3, 0.2), (0.6, 0.1)])

        assert circuit.num_qubits == 4
        assert len(circuit) == expected_gate_count(h_c, 2)
        assert [g.kind for g in circuit.gates[:4]] == [GateKind.H] * 4
        assert [g.kind for g in circuit.gates[-4:]] == [GateKind.RX] * 4
        assert circuit.gates[-1].angle == pytest.approx(0.2)

        counts = circuit.gate_counts()
        assert counts["H"] == 4
        assert counts["RX"] == 8
        assert counts["CNOT"] == 2 * 2 * len(h_c.zz_terms)

    def test_cost_gate_angles(self, edge_qubo):
        """Test ZZ terms compile to CNOT, RZ(2γc), CNOT."""
        h_c = build_problem_hamiltonian(edge_qubo)
        circuit = build_qaoa_circuit(h_c, build_mixer_hamiltonian(2), [0.4, 0.7])

        cost_gates = circuit.gates[2:5]
        assert cost_gates[0] == Gate(GateKind.CNOT, (0, 1))
        assert cost_gates[1].kind is GateKind.RZ
        assert cost_gates[1].qubits == (1,)
        assert cost_gates[1].angle == pytest.approx(2 * 0.4 * 0.5)
        assert cost_gates[2] == Gate(GateKind.CNOT, (0, 1))

    def test_builder_is_deterministic(self, hamiltonians):
        """Test equal inputs produce equal circuits and parameter layouts agree."""
        h_c, h_m = hamiltonians

        flat = build_qaoa_circuit(h_c, h_m, [0.3, 0.2, 0.6, 0.1])
        pairs = build_qaoa_circuit(h_c, h_m, [(0.3, 0.2), (0.6, 0.1)])
        typed = build_qaoa_circuit(h_c, h_m, QaoaParameters(((0.3, 0.2), (0.6, 0.1))))

        assert flat == pairs == typed

    def test_build_failure(self, hamiltonians):
        """Test mismatched mixers and malformed parameters are rejected."""
        h_c, _ = hamiltonians

        with pytest.raises(EncodingError, match="Mixer acts on 3 qubits"):
            build_qaoa_circuit(h_c, build_mixer_hamiltonian(3), [0.1, 0.2])

        with pytest.raises(InvalidArgument, match="pairs"):
            build_qaoa_circuit(h_c, build_mixer_hamiltonian(4), [0.1, 0.2, 0.3])

        with pytest.raises(InvalidArgument, match="non-finite"):
            build_qaoa_circuit(h_c, build_mixer_hamiltonian(4), [0.1, float("inf")])

        with pytest.raises(InvalidArgument):
            build_qaoa_circuit(h_c, build_mixer_hamiltonian(4), [])

    def test_parameters_vector_layout(self):
        """Test the flat layout is [γ1, β1, γ2, β2, ...]."""
        params = QaoaParameters.from_vector([0.1, 0.2, 0.3, 0.4])

        assert params.layers == ((0.1, 0.2), (0.3, 0.4))
        assert params.num_layers == 2
        np.testing.assert_allclose(params.to_vector(), [0.1, 0.2, 0.3, 0.4])


class TestCircuitSerialization:
    """Test plain-data export of circuits."""

    def test_round_trip_success(self, edge_qubo):
        """Test from_dict(to_dict(c)) reproduces the circuit."""
        circuit = build_qaoa_circuit(
            build_problem_hamiltonian(edge_qubo), build_mixer_hamiltonian(2), [0.4, 0.7]
        )
        data = circuit.to_dict()

        assert data["num_qubits"] == 2
        assert data["gates"][0] == {"gate": "H", "qubits": [0]}
        assert "angle" in data["gates"][-1]
        assert Circuit.from_dict(data) == circuit

    def test_from_dict_failure(self):
        """Test unknown gate names and missing fields are rejected."""
        with pytest.raises(UnsupportedGate, match="Unknown gate 'FOO'"):
            Circuit.from_dict({"num_qubits": 1, "gates": [{"gate": "FOO", "qubits": [0]}]})

        with pytest.raises(InvalidArgument, match="qubits"):
            Gate.from_dict({"gate": "H"})

        with pytest.raises(InvalidArgument, match="'gate' field"):
            Gate.from_dict({"qubits": [0]})

    def test_depth(self):
        """Test depth counts layers of gates on overlapping qubits."""
        bell = Circuit(2, (Gate(GateKind.H, (0,)), Gate(GateKind.CNOT, (0, 1))))
        parallel = Circuit(2, (Gate(GateKind.H, (0,)), Gate(GateKind.H, (1,))))

        assert bell.depth == 2
        assert parallel.depth == 1
        assert Circuit(3).depth == 0
