"""
Abstract interface for circuit execution backends.

A backend takes a neutral ``Circuit`` and a shot count and returns a
measurement histogram. Backend identity is plain data: each backend
publishes a ``BackendCapabilities`` record (qubit ceiling, gate set,
connectivity, execution method), so adding a provider means adding a new
capabilities instance, not extending an enumeration.

Backends Provided:
------------------
1. StateVectorSimulator: native numpy state-vector engine (reference backend)
2. PennyLaneBackend: PennyLane ``default.qubit`` device, used as a cross-check

Bitstring Convention:
---------------------
Histogram keys are bitstrings with qubit 0 as the leftmost character, so
``bits[i]`` is the measured value of qubit i. Basis-state index k has
qubit q equal to ``(k >> q) & 1``.

Example Usage:
--------------
```python
from qaoa_core.backends.statevector_simulator import StateVectorSimulator

backend = StateVectorSimulator()
print(backend.capabilities.max_qubits)
result = backend.execute(circuit, shots=1000, seed=7)
print(result.counts)              # {'01': 498, '10': 502}
print(result.most_frequent())     # '10'
```
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple
import logging

import numpy as np

from qaoa_core.circuits.qaoa_circuit import Circuit, GateKind
from qaoa_core.errors import CapacityExceeded, InvalidArgument, UnsupportedGate


logger = logging.getLogger(__name__)


class ExecutionMethod(Enum):
    """How a result was actually produced."""
    STATEVECTOR_SIMULATION = "statevector_simulation"
    QUANTUM_HARDWARE = "quantum_hardware"
    CLASSICAL_FALLBACK = "classical_fallback"


@dataclass(frozen=True)
class BackendCapabilities:
    """
    Capability description of a backend.

    Attributes:
        name: Backend identifier
        max_qubits: Largest register the backend accepts
        supported_gates: Gate kinds the backend can execute
        connectivity: Allowed two-qubit pairs; ``None`` means all-to-all
        execution_method: How results from this backend are produced
    """

    name: str
    max_qubits: int
    supported_gates: FrozenSet[GateKind] = field(default_factory=lambda: frozenset(GateKind))
    connectivity: Optional[FrozenSet[Tuple[int, int]]] = None
    execution_method: ExecutionMethod = ExecutionMethod.STATEVECTOR_SIMULATION

    @classmethod
    def with_edges(
        cls,
        name: str,
        max_qubits: int,
        edges: Iterable[Tuple[int, int]],
        supported_gates: Optional[Iterable[GateKind]] = None,
        execution_method: ExecutionMethod = ExecutionMethod.STATEVECTOR_SIMULATION,
    ) -> "BackendCapabilities":
        """Capabilities for a device with limited (undirected) connectivity."""
        pairs = frozenset((min(a, b), max(a, b)) for a, b in edges)
        gates = frozenset(supported_gates) if supported_gates is not None else frozenset(GateKind)
        return cls(name=name, max_qubits=max_qubits, supported_gates=gates,
                   connectivity=pairs, execution_method=execution_method)

    @property
    def is_all_to_all(self) -> bool:
        return self.connectivity is None

    def are_connected(self, a: int, b: int) -> bool:
        return self.connectivity is None or (min(a, b), max(a, b)) in self.connectivity


@dataclass(frozen=True)
class ExecutionResult:
    """
    Measurement histogram from one execution.

    Attributes:
        counts: Bitstring (qubit 0 first) to number of observations
        shots: Total number of shots; equals ``sum(counts.values())``
        num_qubits: Register size
        backend_name: Backend that produced the result
        seed: Seed that reproduces this exact histogram
        time_ms: Wall-clock execution time
        method: How the histogram was produced
    """

    counts: Dict[str, int]
    shots: int
    num_qubits: int
    backend_name: str
    seed: Optional[int] = None
    time_ms: float = 0.0
    method: ExecutionMethod = ExecutionMethod.STATEVECTOR_SIMULATION

    def probabilities(self) -> Dict[str, float]:
        """Empirical frequency of each observed bitstring."""
        return {bits: count / self.shots for bits, count in self.counts.items()}

    def most_frequent(self) -> str:
        return max(sorted(self.counts), key=lambda bits: self.counts[bits])


class QuantumBackend(ABC):
    """
    Abstract base class for circuit execution backends.

    Subclasses implement ``capabilities`` and ``_run``; ``execute`` performs the
    shared argument and capability checks first.
    """

    @property
    @abstractmethod
    def capabilities(self) -> BackendCapabilities:
        """Capability record of this backend."""
        pass

    @property
    def name(self) -> str:
        return self.capabilities.name

    @property
    def default_shots(self) -> int:
        """Shot count used when ``execute`` is called without one."""
        return 1024

    def execute(self, circuit: Circuit, shots: Optional[int] = None,
                seed: Optional[int] = None) -> ExecutionResult:
        """
        Run ``circuit`` for ``shots`` measurements.

        Args:
            circuit: Circuit to execute (never mutated)
            shots: Number of measurement shots (> 0); ``default_shots`` when ``None``
            seed: Seed for reproducible sampling; fresh entropy when ``None``

        Returns:
            ExecutionResult whose counts sum to ``shots``

        Raises:
            InvalidArgument: If shots <= 0 or a gate has malformed operands
            CapacityExceeded: If the circuit is larger than the backend allows
            UnsupportedGate: If a gate is outside the backend's gate set
        """
        if shots is None:
            shots = self.default_shots
        if isinstance(shots, bool) or not isinstance(shots, (int, np.integer)) or shots <= 0:
            raise InvalidArgument(f"shots must be a positive integer, got {shots!r}")
        self.validate_circuit(circuit)
        return self._run(circuit, int(shots), seed)

    @abstractmethod
    def _run(self, circuit: Circuit, shots: int, seed: Optional[int]) -> ExecutionResult:
        pass

    def validate_circuit(self, circuit: Circuit) -> None:
        """
        Check a circuit against this backend's capabilities.

        Raises:
            CapacityExceeded: If the register exceeds ``max_qubits``
            UnsupportedGate: If a gate kind is not supported
            InvalidArgument: If a gate has the wrong operands or angle, or a
                two-qubit gate acts on an unconnected pair
        """
        caps = self.capabilities
        if circuit.num_qubits < 1:
            raise InvalidArgument("Circuit must have at least one qubit")
        if circuit.num_qubits > caps.max_qubits:
            raise CapacityExceeded(
                f"Circuit needs {circuit.num_qubits} qubits, backend '{caps.name}' "
                f"supports at most {caps.max_qubits}"
            )

        for position, gate in enumerate(circuit.gates):
            if not isinstance(gate.kind, GateKind) or gate.kind not in caps.supported_gates:
                raise UnsupportedGate(
                    f"Gate {getattr(gate.kind, 'value', gate.kind)!r} at position {position} "
                    f"not supported by backend '{caps.name}'"
                )
            validate_gate_operands(gate, circuit.num_qubits, position)
            if len(gate.qubits) >= 2 and not caps.is_all_to_all:
                for i, a in enumerate(gate.qubits):
                    for b in gate.qubits[i + 1:]:
                        if not caps.are_connected(a, b):
                            raise InvalidArgument(
                                f"Gate {gate.kind.value} at position {position} acts on "
                                f"unconnected qubits ({a}, {b})"
                            )

    def __repr__(self) -> str:
        caps = self.capabilities
        return f"{self.__class__.__name__}(name='{caps.name}', max_qubits={caps.max_qubits})"


# ============================================================================
# Shared Helpers
# ============================================================================

def validate_gate_operands(gate, num_qubits: int, position: int = 0) -> None:
    """
    Raises:
        InvalidArgument: If qubit operands or the angle do not fit the gate kind
    """
    if len(gate.qubits) != gate.kind.arity:
        raise InvalidArgument(
            f"Gate {gate.kind.value} at position {position} needs {gate.kind.arity} "
            f"qubit(s), got {gate.qubits}"
        )
    if len(set(gate.qubits)) != len(gate.qubits):
        raise InvalidArgument(f"Gate {gate.kind.value} at position {position} repeats a qubit: {gate.qubits}")
    for q in gate.qubits:
        if q < 0 or q >= num_qubits:
            raise InvalidArgument(
                f"Gate {gate.kind.value} at position {position} addresses qubit {q} "
                f"outside register of {num_qubits}"
            )
    if gate.kind.is_parameterized:
        if gate.angle is None or not np.isfinite(gate.angle):
            raise InvalidArgument(f"Gate {gate.kind.value} at position {position} needs a finite angle")
    elif gate.angle is not None:
        raise InvalidArgument(f"Gate {gate.kind.value} at position {position} takes no angle")


def sample_counts(
    probabilities: np.ndarray,
    shots: int,
    rng: np.random.Generator,
    num_qubits: int,
) -> Dict[str, int]:
    """
    Draw ``shots`` samples from a basis-state distribution.

    The cumulative distribution is built over basis-index order with its last
    entry pinned to 1, and each uniform draw is located with a binary search.

    Args:
        probabilities: Length-2^n probability vector (renormalized here)
        shots: Number of samples
        rng: Generator owned by the calling execution
        num_qubits: Register size used to format bitstrings

    Returns:
        Bitstring to count mapping containing only observed outcomes
    """
    probabilities = np.clip(np.asarray(probabilities, dtype=float), 0.0, None)
    total = probabilities.sum()
    if not np.isfinite(total) or total <= 0.0:
        raise InvalidArgument("Probability vector has no mass")

    cdf = np.cumsum(probabilities / total)
    cdf[-1] = 1.0
    draws = rng.random(shots)
    outcomes = np.searchsorted(cdf, draws, side="right")
    tallies = np.bincount(outcomes, minlength=len(cdf))

    return {
        index_to_bitstring(int(index), num_qubits): int(tallies[index])
        for index in np.flatnonzero(tallies)
    }


def index_to_bitstring(index: int, num_qubits: int) -> str:
    """Basis index to bitstring with qubit 0 first."""
    return "".join(str((index >> q) & 1) for q in range(num_qubits))


def bitstring_to_index(bits: str) -> int:
    return sum(1 << q for q, ch in enumerate(bits) if ch == "1")


def bitstring_to_bits(bits: str) -> List[int]:
    return [int(ch) for ch in bits]
