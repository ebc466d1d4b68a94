"""
PennyLane reference backend.

Executes the neutral gate list on PennyLane's ``default.qubit`` device,
reads back the exact probability vector and samples it with the shared
inverse-transform sampler. Because gate semantics come from an independent
simulator, agreement with ``StateVectorSimulator`` cross-checks the native
engine's gate matrices and qubit ordering.

Gate Mapping:
-------------
    H → Hadamard   X/Y/Z → PauliX/PauliY/PauliZ   S, T
    RX, RY, RZ     CNOT   CZ   SWAP   CCX → Toffoli

``qml.probs`` treats the first listed wire as the most significant bit, so
wires are passed in descending order to match the core's convention (qubit q
is bit q of the basis index).

Example Usage:
--------------
```python
from qaoa_core.backends.pennylane_backend import PennyLaneBackend

backend = PennyLaneBackend()
result = backend.execute(circuit, shots=2000, seed=3)
```
"""

from typing import Callable, Dict, Optional
import logging
import time

import numpy as np

from qaoa_core.backends.backend_base import (
    BackendCapabilities,
    ExecutionMethod,
    ExecutionResult,
    QuantumBackend,
    sample_counts,
)
from qaoa_core.circuits.qaoa_circuit import Circuit, GateKind
from qaoa_core.config import SimulatorConfig
from qaoa_core.errors import BackendExecutionError, UnsupportedGate

# Pennylane imports
try:
    import pennylane as qml
    PENNYLANE_AVAILABLE = True
except ImportError:
    PENNYLANE_AVAILABLE = False
    logging.warning(
        "Pennylane not installed. PennyLaneBackend will not be available. "
        "Install with: pip install pennylane"
    )


logger = logging.getLogger(__name__)


def _operation_table() -> Dict[GateKind, Callable]:
    return {
        GateKind.H: lambda g: qml.Hadamard(wires=g.qubits[0]),
        GateKind.X: lambda g: qml.PauliX(wires=g.qubits[0]),
        GateKind.Y: lambda g: qml.PauliY(wires=g.qubits[0]),
        GateKind.Z: lambda g: qml.PauliZ(wires=g.qubits[0]),
        GateKind.S: lambda g: qml.S(wires=g.qubits[0]),
        GateKind.T: lambda g: qml.T(wires=g.qubits[0]),
        GateKind.RX: lambda g: qml.RX(g.angle, wires=g.qubits[0]),
        GateKind.RY: lambda g: qml.RY(g.angle, wires=g.qubits[0]),
        GateKind.RZ: lambda g: qml.RZ(g.angle, wires=g.qubits[0]),
        GateKind.CNOT: lambda g: qml.CNOT(wires=list(g.qubits)),
        GateKind.CZ: lambda g: qml.CZ(wires=list(g.qubits)),
        GateKind.SWAP: lambda g: qml.SWAP(wires=list(g.qubits)),
        GateKind.CCX: lambda g: qml.Toffoli(wires=list(g.qubits)),
    }


class PennyLaneBackend(QuantumBackend):
    """
    Backend running circuits on a PennyLane simulator device.

    Attributes:
        device_name: PennyLane device identifier (default ``default.qubit``)
        config: Simulator limits shared with the native backend
    """

    def __init__(
        self,
        config: Optional[SimulatorConfig] = None,
        device_name: str = "default.qubit",
    ):
        if not PENNYLANE_AVAILABLE:
            raise BackendExecutionError(
                "Pennylane is required for PennyLaneBackend. Install with: pip install pennylane"
            )

        self.config = config or SimulatorConfig()
        self.device_name = device_name
        self._operations = _operation_table()
        self._capabilities = BackendCapabilities(
            name=f"pennylane.{device_name}",
            max_qubits=self.config.max_qubits,
            supported_gates=frozenset(self._operations),
            connectivity=None,
            execution_method=ExecutionMethod.STATEVECTOR_SIMULATION,
        )
        logger.info(f"Initialized PennyLane backend on device '{device_name}'")

    @property
    def capabilities(self) -> BackendCapabilities:
        return self._capabilities

    @property
    def default_shots(self) -> int:
        return self.config.default_shots

    def probabilities(self, circuit: Circuit) -> np.ndarray:
        """
        Exact basis-state probabilities from the PennyLane device.

        Raises:
            BackendExecutionError: If PennyLane fails to run the circuit
        """
        self.validate_circuit(circuit)
        n = circuit.num_qubits
        device = qml.device(self.device_name, wires=n)

        @qml.qnode(device)
        def probability_circuit():
            for gate in circuit.gates:
                try:
                    self._operations[gate.kind](gate)
                except KeyError:
                    raise UnsupportedGate(f"PennyLane backend has no mapping for {gate.kind!r}")
            return qml.probs(wires=list(reversed(range(n))))

        try:
            probabilities = probability_circuit()
        except UnsupportedGate:
            raise
        except Exception as e:
            raise BackendExecutionError(f"PennyLane execution failed: {e}") from e

        return np.asarray(probabilities, dtype=float)

    def _run(self, circuit: Circuit, shots: int, seed: Optional[int]) -> ExecutionResult:
        start_time = time.perf_counter()

        if seed is None:
            seed = int(np.random.SeedSequence().generate_state(1, dtype=np.uint64)[0])
        rng = np.random.default_rng(seed)

        probabilities = self.probabilities(circuit)
        counts = sample_counts(probabilities, shots, rng, circuit.num_qubits)

        elapsed_ms = (time.perf_counter() - start_time) * 1000.0
        logger.debug(f"PennyLane executed {len(circuit)} gates, {shots} shots in {elapsed_ms:.2f} ms")
        return ExecutionResult(
            counts=counts,
            shots=shots,
            num_qubits=circuit.num_qubits,
            backend_name=self.name,
            seed=seed,
            time_ms=elapsed_ms,
            method=self.capabilities.execution_method,
        )
