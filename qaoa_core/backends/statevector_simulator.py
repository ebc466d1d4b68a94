"""
State-vector simulator backend.

Simulates a circuit exactly by storing all 2^n complex amplitudes and applying
each gate as a small 2^k × 2^k matrix (k = 1, 2 or 3) to the affected tensor
axes. The full 2^n × 2^n operator is never formed, so every gate costs
O(2^n) time and the state needs 16 · 2^n bytes.

Memory Footprint:
-----------------
    qubits   amplitudes     state size
    10       1,024          16 KiB
    16       65,536         1 MiB
    20       1,048,576      16 MiB
    25       33,554,432     512 MiB

The configured ``max_qubits`` (default 16) is checked before anything is
allocated, together with a ``psutil`` check that the state and its working
copies fit in the configured share of available memory.

Qubit Ordering:
---------------
Basis index k has qubit q equal to bit q of k (qubit 0 is least
significant). The amplitude array is viewed as a tensor of shape
``(2,) * n`` in C order, so qubit q lives on tensor axis ``n - 1 - q``.
Multi-qubit gate matrices treat their first listed qubit as the most
significant bit of the matrix index, e.g. ``CNOT(control, target)``.

Sampling:
---------
Measurement probabilities are |amplitude|². Shots are drawn by inverse
transform sampling over the cumulative distribution in basis-index order. Each
``execute`` call builds its own ``numpy.random.Generator`` from the seed, so
identical (circuit, shots, seed) inputs give identical histograms and
concurrent executions share no random state.

Example Usage:
--------------
```python
from qaoa_core.backends.statevector_simulator import StateVectorSimulator
from qaoa_core.circuits.qaoa_circuit import Circuit, Gate, GateKind

bell = Circuit(2, (Gate(GateKind.H, (0,)), Gate(GateKind.CNOT, (0, 1))))
sim = StateVectorSimulator()
print(sim.probabilities(bell))             # [0.5, 0, 0, 0.5]
print(sim.execute(bell, shots=1000, seed=1).counts)
```
"""

from typing import Callable, Dict, Optional
import logging
import time

import numpy as np
import psutil

from qaoa_core.backends.backend_base import (
    BackendCapabilities,
    ExecutionMethod,
    ExecutionResult,
    QuantumBackend,
    sample_counts,
)
from qaoa_core.circuits.qaoa_circuit import Circuit, Gate, GateKind
from qaoa_core.config import SimulatorConfig
from qaoa_core.errors import CapacityExceeded, UnsupportedGate


logger = logging.getLogger(__name__)

# State vector plus the copies made while applying a gate
_WORKING_COPIES = 3
_BYTES_PER_AMPLITUDE = np.dtype(np.complex128).itemsize


# ============================================================================
# Gate Matrices
# ============================================================================

_SQRT_HALF = 1.0 / np.sqrt(2.0)

_FIXED_MATRICES: Dict[GateKind, np.ndarray] = {
    GateKind.H: np.array([[1, 1], [1, -1]], dtype=np.complex128) * _SQRT_HALF,
    GateKind.X: np.array([[0, 1], [1, 0]], dtype=np.complex128),
    GateKind.Y: np.array([[0, -1j], [1j, 0]], dtype=np.complex128),
    GateKind.Z: np.array([[1, 0], [0, -1]], dtype=np.complex128),
    GateKind.S: np.array([[1, 0], [0, 1j]], dtype=np.complex128),
    GateKind.T: np.array([[1, 0], [0, np.exp(1j * np.pi / 4)]], dtype=np.complex128),
    GateKind.CNOT: np.array([[1, 0, 0, 0],
                             [0, 1, 0, 0],
                             [0, 0, 0, 1],
                             [0, 0, 1, 0]], dtype=np.complex128),
    GateKind.CZ: np.diag([1, 1, 1, -1]).astype(np.complex128),
    GateKind.SWAP: np.array([[1, 0, 0, 0],
                             [0, 0, 1, 0],
                             [0, 1, 0, 0],
                             [0, 0, 0, 1]], dtype=np.complex128),
}

_CCX = np.eye(8, dtype=np.complex128)
_CCX[[6, 7]] = _CCX[[7, 6]]
_FIXED_MATRICES[GateKind.CCX] = _CCX


def _rx(theta: float) -> np.ndarray:
    c, s = np.cos(theta / 2.0), np.sin(theta / 2.0)
    return np.array([[c, -1j * s], [-1j * s, c]], dtype=np.complex128)


def _ry(theta: float) -> np.ndarray:
    c, s = np.cos(theta / 2.0), np.sin(theta / 2.0)
    return np.array([[c, -s], [s, c]], dtype=np.complex128)


def _rz(theta: float) -> np.ndarray:
    return np.array([[np.exp(-0.5j * theta), 0], [0, np.exp(0.5j * theta)]], dtype=np.complex128)


_ROTATIONS: Dict[GateKind, Callable[[float], np.ndarray]] = {
    GateKind.RX: _rx,
    GateKind.RY: _ry,
    GateKind.RZ: _rz,
}


def gate_matrix(gate: Gate) -> np.ndarray:
    """
    Unitary of a gate, first listed qubit as the most significant matrix bit.

    Raises:
        UnsupportedGate: If the gate kind has no matrix
    """
    if gate.kind in _ROTATIONS:
        return _ROTATIONS[gate.kind](gate.angle)
    try:
        return _FIXED_MATRICES[gate.kind]
    except KeyError:
        raise UnsupportedGate(f"No matrix for gate {gate.kind!r}")


def apply_unitary(state: np.ndarray, matrix: np.ndarray, qubits, num_qubits: int) -> np.ndarray:
    """
    Apply a k-qubit unitary to ``qubits`` of an n-qubit state.

    The state is viewed as a ``(2,) * n`` tensor, the target axes are moved
    to the front, the matrix multiplies the flattened ``(2^k, 2^(n-k))`` view,
    and the axes are moved back.

    Returns:
        New state array (the input is not modified)
    """
    k = len(qubits)
    axes = [num_qubits - 1 - q for q in qubits]
    tensor = np.moveaxis(state.reshape((2,) * num_qubits), axes, list(range(k)))
    rest_shape = tensor.shape[k:]
    updated = (matrix @ tensor.reshape(2 ** k, -1)).reshape((2,) * k + rest_shape)
    return np.moveaxis(updated, list(range(k)), axes).reshape(-1)


# ============================================================================
# Simulator
# ============================================================================

class StateVectorSimulator(QuantumBackend):
    """
    Exact state-vector backend.

    Attributes:
        config: Simulator limits (qubit ceiling, default shots, memory headroom)
    """

    def __init__(self, config: Optional[SimulatorConfig] = None, name: str = "statevector"):
        self.config = config or SimulatorConfig()
        self._capabilities = BackendCapabilities(
            name=name,
            max_qubits=self.config.max_qubits,
            supported_gates=frozenset(GateKind),
            connectivity=None,
            execution_method=ExecutionMethod.STATEVECTOR_SIMULATION,
        )
        logger.info(f"Initialized state-vector simulator (max {self.config.max_qubits} qubits)")

    @property
    def capabilities(self) -> BackendCapabilities:
        return self._capabilities

    @property
    def default_shots(self) -> int:
        return self.config.default_shots

    # ========================================================================
    # Simulation
    # ========================================================================

    def simulate(self, circuit: Circuit) -> np.ndarray:
        """
        Final state vector of ``circuit`` starting from |0...0⟩.

        Raises:
            CapacityExceeded: If the register is too large
            UnsupportedGate: If a gate kind is not supported
            InvalidArgument: If a gate has malformed operands
        """
        self.validate_circuit(circuit)
        return self._evolve(circuit)

    def probabilities(self, circuit: Circuit) -> np.ndarray:
        """Measurement probabilities |amplitude|² indexed by basis state."""
        return np.abs(self.simulate(circuit)) ** 2

    def validate_circuit(self, circuit: Circuit) -> None:
        super().validate_circuit(circuit)
        self._check_memory(circuit.num_qubits)

    def _check_memory(self, num_qubits: int) -> None:
        required = (2 ** num_qubits) * _BYTES_PER_AMPLITUDE * _WORKING_COPIES
        available = psutil.virtual_memory().available
        budget = available * self.config.memory_headroom
        if required > budget:
            raise CapacityExceeded(
                f"{num_qubits}-qubit simulation needs {required / 2**20:.1f} MiB, "
                f"only {budget / 2**20:.1f} MiB of available memory may be used"
            )

    def _evolve(self, circuit: Circuit) -> np.ndarray:
        n = circuit.num_qubits
        state = np.zeros(2 ** n, dtype=np.complex128)
        state[0] = 1.0
        for gate in circuit.gates:
            state = apply_unitary(state, gate_matrix(gate), gate.qubits, n)
        return state

    def _run(self, circuit: Circuit, shots: int, seed: Optional[int]) -> ExecutionResult:
        start_time = time.perf_counter()

        if seed is None:
            seed = int(np.random.SeedSequence().generate_state(1, dtype=np.uint64)[0])
        rng = np.random.default_rng(seed)

        state = self._evolve(circuit)
        counts = sample_counts(np.abs(state) ** 2, shots, rng, circuit.num_qubits)

        elapsed_ms = (time.perf_counter() - start_time) * 1000.0
        logger.debug(
            f"Executed {len(circuit)} gates on {circuit.num_qubits} qubits, "
            f"{shots} shots, {len(counts)} distinct outcomes in {elapsed_ms:.2f} ms"
        )
        return ExecutionResult(
            counts=counts,
            shots=shots,
            num_qubits=circuit.num_qubits,
            backend_name=self.name,
            seed=seed,
            time_ms=elapsed_ms,
            method=self.capabilities.execution_method,
        )
