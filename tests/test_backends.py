"""
Unit tests for backends: capability checks, the state-vector simulator and
the PennyLane cross-check.
"""

from typing import Optional

import numpy as np
import pytest

from qaoa_core.backends.backend_base import (
    BackendCapabilities,
    ExecutionMethod,
    ExecutionResult,
    QuantumBackend,
    bitstring_to_index,
    index_to_bitstring,
    sample_counts,
)
from qaoa_core.backends.statevector_simulator import StateVectorSimulator, gate_matrix
from qaoa_core.circuits.hamiltonian import build_mixer_hamiltonian, build_problem_hamiltonian
from qaoa_core.circuits.qaoa_circuit import Circuit, Gate, GateKind, build_qaoa_circuit
from qaoa_core.config import SimulatorConfig
from qaoa_core.errors import CapacityExceeded, InvalidArgument, UnsupportedGate
from qaoa_core.problems.maxcut import MaxCutProblem


def qaoa_circuit_for(problem, params):
    encoding = problem.encode()
    h_c = build_problem_hamiltonian(encoding.qubo)
    return build_qaoa_circuit(h_c, build_mixer_hamiltonian(encoding.num_qubits), params)


class RestrictedBackend(QuantumBackend):
    """Backend with configurable capabilities that never gets to run."""

    def __init__(self, capabilities: BackendCapabilities):
        self._capabilities = capabilities

    @property
    def capabilities(self) -> BackendCapabilities:
        return self._capabilities

    def _run(self, circuit: Circuit, shots: int, seed: Optional[int]) -> ExecutionResult:
        return ExecutionResult(counts={"0" * circuit.num_qubits: shots}, shots=shots,
                               num_qubits=circuit.num_qubits, backend_name=self.name)


class TestBackendCapabilities:
    """Test capability validation shared by all backends."""

    def test_capacity_exceeded_failure(self):
        """Test circuits larger than max_qubits are rejected before simulation."""
        simulator = StateVectorSimulator(SimulatorConfig(max_qubits=4))
        circuit = Circuit(5, (Gate(GateKind.H, (0,)),))

        with pytest.raises(CapacityExceeded, match="5 qubits"):
            simulator.execute(circuit, shots=10)

    def test_unsupported_gate_failure(self):
        """Test gates outside the advertised gate set are rejected."""
        backend = RestrictedBackend(
            BackendCapabilities(name="h_only", max_qubits=2, supported_gates=frozenset({GateKind.H}))
        )

        assert backend.execute(Circuit(1, (Gate(GateKind.H, (0,)),)), shots=3).shots == 3
        with pytest.raises(UnsupportedGate, match="not supported by backend 'h_only'"):
            backend.execute(Circuit(1, (Gate(GateKind.X, (0,)),)), shots=3)

    def test_default_shots(self):
        """Test execute falls back to the backend default when shots is omitted."""
        circuit = Circuit(1, (Gate(GateKind.H, (0,)),))
        restricted = RestrictedBackend(
            BackendCapabilities(name="h_only", max_qubits=2, supported_gates=frozenset({GateKind.H}))
        )
        simulator = StateVectorSimulator(SimulatorConfig(default_shots=64))

        assert restricted.execute(circuit).shots == 1024
        assert simulator.default_shots == 64
        assert sum(simulator.execute(circuit, seed=1).counts.values()) == 64

    def test_connectivity_failure(self):
        """Test two-qubit gates on unconnected pairs are rejected."""
        caps = BackendCapabilities.with_edges("line", 3, [(0, 1), (2, 1)])
        backend = RestrictedBackend(caps)

        assert not caps.is_all_to_all
        assert caps.are_connected(1, 2)
        backend.validate_circuit(Circuit(3, (Gate(GateKind.CNOT, (1, 0)),)))
        with pytest.raises(InvalidArgument, match="unconnected"):
            backend.validate_circuit(Circuit(3, (Gate(GateKind.CNOT, (0, 2)),)))

    def test_gate_operand_failure(self):
        """Test malformed gate operands are rejected."""
        simulator = StateVectorSimulator()

        with pytest.raises(InvalidArgument, match="needs a finite angle"):
            simulator.simulate(Circuit(1, (Gate(GateKind.RX, (0,)),)))

        with pytest.raises(InvalidArgument, match="takes no angle"):
            simulator.simulate(Circuit(1, (Gate(GateKind.H, (0,), 0.5),)))

        with pytest.raises(InvalidArgument, match="repeats a qubit"):
            simulator.simulate(Circuit(2, (Gate(GateKind.CNOT, (1, 1)),)))

        with pytest.raises(InvalidArgument, match="outside register"):
            simulator.simulate(Circuit(2, (Gate(GateKind.X, (2,)),)))

        with pytest.raises(InvalidArgument, match="needs 2 qubit"):
            simulator.simulate(Circuit(2, (Gate(GateKind.CZ, (0,)),)))

    def test_shots_failure(self):
        """Test non-positive or non-integer shot counts are rejected."""
        simulator = StateVectorSimulator()
        circuit = Circuit(1, (Gate(GateKind.H, (0,)),))

        for shots in (0, -5, 1.5, True):
            with pytest.raises(InvalidArgument, match="shots"):
                simulator.execute(circuit, shots=shots)


class TestStateVectorSimulator:
    """Test exact simulation and sampling."""

    @pytest.fixture
    def simulator(self):
        return StateVectorSimulator()

    def test_gate_matrices_are_unitary(self):
        """Test every supported gate has a unitary matrix of the right size."""
        for kind in GateKind:
            angle = 0.37 if kind.is_parameterized else None
            gate = Gate(kind, tuple(range(kind.arity)), angle)
            matrix = gate_matrix(gate)
            assert matrix.shape == (2 ** kind.arity, 2 ** kind.arity)
            np.testing.assert_allclose(matrix @ matrix.conj().T, np.eye(2 ** kind.arity), atol=1e-12)

    def test_qubit_ordering(self, simulator):
        """Test qubit q is bit q of the basis index and bitstrings list qubit 0 first."""
        circuit = Circuit(3, (Gate(GateKind.X, (0,)),))

        probabilities = simulator.probabilities(circuit)
        assert probabilities[1] == pytest.approx(1.0)
        assert simulator.execute(circuit, shots=20, seed=1).counts == {"100": 20}

    def test_controlled_gates(self, simulator):
        """Test CNOT, SWAP and CCX act with controls first."""
        cases = [
            ((Gate(GateKind.X, (0,)), Gate(GateKind.CNOT, (0, 1))), 3),
            ((Gate(GateKind.X, (1,)), Gate(GateKind.CNOT, (0, 1))), 2),
            ((Gate(GateKind.X, (0,)), Gate(GateKind.SWAP, (0, 1))), 2),
            ((Gate(GateKind.X, (0,)), Gate(GateKind.X, (1,)), Gate(GateKind.CCX, (0, 1, 2))), 7),
            ((Gate(GateKind.X, (0,)), Gate(GateKind.CCX, (0, 1, 2))), 1),
        ]
        for gates, expected_index in cases:
            probabilities = simulator.probabilities(Circuit(3, gates))
            assert probabilities[expected_index] == pytest.approx(1.0)

    def test_bell_state(self, simulator):
        """Test H then CNOT produces equal weight on |00> and |11>."""
        circuit = Circuit(2, (Gate(GateKind.H, (0,)), Gate(GateKind.CNOT, (0, 1))))

        np.testing.assert_allclose(simulator.probabilities(circuit), [0.5, 0.0, 0.0, 0.5], atol=1e-12)
        counts = simulator.execute(circuit, shots=2000, seed=11).counts
        assert set(counts) == {"00", "11"}

    def test_rz_relative_phase(self, simulator):
        """Test H then RZ(π) leaves probabilities unchanged and adds a relative phase of π."""
        circuit = Circuit(1, (Gate(GateKind.H, (0,)), Gate(GateKind.RZ, (0,), np.pi)))
        state = simulator.simulate(circuit)

        np.testing.assert_allclose(np.abs(state) ** 2, [0.5, 0.5], atol=1e-12)
        relative_phase = np.angle(state[1] / state[0])
        assert abs(relative_phase) == pytest.approx(np.pi)

    def test_zero_angles_give_uniform_distribution(self, simulator):
        """Test γ = β = 0 on two qubits samples each outcome about 25% of the time."""
        problem = MaxCutProblem.from_edges(2, [(0, 1)])
        circuit = qaoa_circuit_for(problem, [0.0, 0.0])

        result = simulator.execute(circuit, shots=10000, seed=2024)
        assert set(result.counts) == {"00", "01", "10", "11"}
        for count in result.counts.values():
            assert abs(count / 10000 - 0.25) <= 0.02

    def test_normalization(self, simulator):
        """Test QAOA states stay normalized."""
        problem = MaxCutProblem(num_nodes=5)
        problem.generate(seed=3)
        circuit = qaoa_circuit_for(problem, [0.7, 0.3, 1.1, 0.2])

        assert simulator.probabilities(circuit).sum() == pytest.approx(1.0, abs=1e-10)

    def test_histogram_conservation(self, simulator):
        """Test counts always sum to the requested shots."""
        problem = MaxCutProblem.from_edges(3, [(0, 1), (1, 2)])
        circuit = qaoa_circuit_for(problem, [0.4, 0.9])

        for shots in (1, 7, 1000, 4096):
            result = simulator.execute(circuit, shots=shots, seed=shots)
            assert sum(result.counts.values()) == shots
            assert result.shots == shots
            assert all(len(bits) == 3 for bits in result.counts)

    def test_seeded_determinism(self, simulator):
        """Test the same seed reproduces the same histogram and unseeded runs record theirs."""
        problem = MaxCutProblem.from_edges(3, [(0, 1), (1, 2), (0, 2)])
        circuit = qaoa_circuit_for(problem, [0.4, 0.9])

        first = simulator.execute(circuit, shots=500, seed=99)
        second = simulator.execute(circuit, shots=500, seed=99)
        assert first.counts == second.counts

        unseeded = simulator.execute(circuit, shots=500)
        assert unseeded.seed is not None
        replay = simulator.execute(circuit, shots=500, seed=unseeded.seed)
        assert replay.counts == unseeded.counts

    def test_execution_result(self, simulator):
        """Test result metadata and helpers."""
        circuit = Circuit(2, (Gate(GateKind.X, (1,)),))
        result = simulator.execute(circuit, shots=8, seed=0)

        assert result.backend_name == "statevector"
        assert result.method is ExecutionMethod.STATEVECTOR_SIMULATION
        assert result.most_frequent() == "01"
        assert result.probabilities() == {"01": 1.0}
        assert simulator.capabilities.is_all_to_all


class TestSamplingHelpers:
    """Test sampling and bitstring helpers."""

    def test_sample_counts_point_mass(self):
        """Test a point distribution puts every shot on one outcome."""
        counts = sample_counts(np.array([0.0, 1.0, 0.0, 0.0]), 50, np.random.default_rng(0), 2)

        assert counts == {"10": 50}

    def test_sample_counts_failure(self):
        """Test a distribution without mass is rejected."""
        with pytest.raises(InvalidArgument, match="no mass"):
            sample_counts(np.zeros(4), 10, np.random.default_rng(0), 2)

    def test_bitstring_conversions(self):
        """Test index and bitstring conversions are inverse."""
        assert index_to_bitstring(1, 3) == "100"
        assert index_to_bitstring(6, 3) == "011"
        for index in range(8):
            assert bitstring_to_index(index_to_bitstring(index, 3)) == index


class TestPennyLaneBackend:
    """Cross-check the native simulator against PennyLane."""

    @pytest.fixture
    def pennylane_backend(self):
        pytest.importorskip("pennylane")
        from qaoa_core.backends.pennylane_backend import PennyLaneBackend
        return PennyLaneBackend()

    def test_qaoa_probabilities_match(self, pennylane_backend):
        """Test both backends agree on a QAOA state."""
        problem = MaxCutProblem(num_nodes=4)
        problem.generate(seed=8)
        circuit = qaoa_circuit_for(problem, [0.35, 0.8, 0.9, 0.25])

        np.testing.assert_allclose(
            pennylane_backend.probabilities(circuit),
            StateVectorSimulator().probabilities(circuit),
            atol=1e-8,
        )

    def test_all_gate_kinds_match(self, pennylane_backend):
        """Test every gate kind has the same semantics and ordering on both backends."""
        gates = [Gate(GateKind.H, (0,)), Gate(GateKind.RY, (1,), 0.9), Gate(GateKind.RX, (2,), 1.3)]
        for kind in GateKind:
            angle = 0.61 if kind.is_parameterized else None
            gates.append(Gate(kind, tuple(range(kind.arity))[::-1], angle))
            gates.append(Gate(GateKind.RY, (kind.arity - 1,), 0.4))
        circuit = Circuit(3, tuple(gates))

        np.testing.assert_allclose(
            pennylane_backend.probabilities(circuit),
            StateVectorSimulator().probabilities(circuit),
            atol=1e-8,
        )

    def test_execute_sampling(self, pennylane_backend):
        """Test sampled histograms conserve shots and report the backend name."""
        circuit = Circuit(2, (Gate(GateKind.H, (0,)), Gate(GateKind.CNOT, (0, 1))))
        result = pennylane_backend.execute(circuit, shots=300, seed=4)

        assert sum(result.counts.values()) == 300
        assert set(result.counts) <= {"00", "11"}
        assert result.backend_name == "pennylane.default.qubit"
