"""
Neutral gate-list circuits and the QAOA circuit builder.

A ``Circuit`` is an immutable, ordered list of ``Gate`` records (kind, target
qubits, optional angle). It knows nothing about any backend or wire format;
backends consume the gate list directly and ``to_dict``/``from_dict`` give a
plain-data form for export.

QAOA Circuit Structure
----------------------
For p layers with parameters (γ_1, β_1), ..., (γ_p, β_p):

    ┌───┐ ┌──────────────────────┐ ┌─────────────┐
    │ H │─│ e^{-iγ_1 H_C}         │─│ e^{-iβ_1 H_M}│─ ... ─ (p layers)
    └───┘ └──────────────────────┘ └─────────────┘

    1. State preparation:  H on every qubit → |+⟩^⊗n
    2. Cost sublayer, for each Pauli term of H_C in order:
         c·Z_q       →  RZ(2γc) on q
         c·Z_a Z_b   →  CNOT(a, b) · RZ(2γc) on b · CNOT(a, b)
    3. Mixer sublayer:     RX(2β) on every qubit

The builder is a pure function: the same Hamiltonians and parameters always
produce an equal circuit. The optimizer rebuilds the circuit on every
evaluation.

Example Usage
-------------
```python
from qaoa_core.circuits.hamiltonian import build_problem_hamiltonian, build_mixer_hamiltonian
from qaoa_core.circuits.qaoa_circuit import build_qaoa_circuit

h_c = build_problem_hamiltonian(qubo)
h_m = build_mixer_hamiltonian(qubo.num_variables)
circuit = build_qaoa_circuit(h_c, h_m, [(0.4, 0.7), (0.8, 0.3)])
print(circuit.gate_counts())
```
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union
import logging

import numpy as np

from qaoa_core.circuits.hamiltonian import MixerHamiltonian, PauliKind, ProblemHamiltonian
from qaoa_core.errors import EncodingError, InvalidArgument, UnsupportedGate


logger = logging.getLogger(__name__)


# ============================================================================
# Gate Model
# ============================================================================

class GateKind(str, Enum):
    """Closed set of gate kinds understood by the core."""
    H = "H"
    X = "X"
    Y = "Y"
    Z = "Z"
    S = "S"
    T = "T"
    RX = "RX"
    RY = "RY"
    RZ = "RZ"
    CNOT = "CNOT"
    CZ = "CZ"
    SWAP = "SWAP"
    CCX = "CCX"

    @property
    def arity(self) -> int:
        return GATE_ARITY[self]

    @property
    def is_parameterized(self) -> bool:
        return self in ROTATION_GATES


GATE_ARITY: Dict[GateKind, int] = {
    GateKind.H: 1, GateKind.X: 1, GateKind.Y: 1, GateKind.Z: 1,
    GateKind.S: 1, GateKind.T: 1,
    GateKind.RX: 1, GateKind.RY: 1, GateKind.RZ: 1,
    GateKind.CNOT: 2, GateKind.CZ: 2, GateKind.SWAP: 2,
    GateKind.CCX: 3,
}

ROTATION_GATES = frozenset({GateKind.RX, GateKind.RY, GateKind.RZ})


@dataclass(frozen=True)
class Gate:
    """
    One gate application.

    For controlled gates the control qubit(s) come first: ``CNOT(a, b)`` has
    control a and target b, ``CCX(a, b, c)`` has controls a, b and target c.
    """

    kind: GateKind
    qubits: Tuple[int, ...]
    angle: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"gate": self.kind.value, "qubits": list(self.qubits)}
        if self.angle is not None:
            data["angle"] = self.angle
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Gate":
        """
        Raises:
            UnsupportedGate: If the gate name is not a known kind
            InvalidArgument: If required fields are missing
        """
        try:
            kind = GateKind(str(data["gate"]).upper())
        except ValueError:
            raise UnsupportedGate(f"Unknown gate '{data.get('gate')}'")
        except KeyError:
            raise InvalidArgument(f"Gate record without 'gate' field: {data}")
        if "qubits" not in data:
            raise InvalidArgument(f"Gate record without 'qubits' field: {data}")
        angle = data.get("angle")
        return cls(kind=kind, qubits=tuple(int(q) for q in data["qubits"]),
                   angle=None if angle is None else float(angle))


@dataclass(frozen=True)
class Circuit:
    """Immutable gate list over ``num_qubits`` qubits."""

    num_qubits: int
    gates: Tuple[Gate, ...] = ()

    @property
    def depth(self) -> int:
        """Circuit depth assuming gates on disjoint qubits run in parallel."""
        frontier = [0] * self.num_qubits
        for gate in self.gates:
            level = max(frontier[q] for q in gate.qubits) + 1
            for q in gate.qubits:
                frontier[q] = level
        return max(frontier, default=0)

    def gate_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for gate in self.gates:
            counts[gate.kind.value] = counts.get(gate.kind.value, 0) + 1
        return counts

    def to_dict(self) -> Dict[str, Any]:
        """Plain-data form: ``{"num_qubits": n, "gates": [{"gate", "qubits", "angle"?}, ...]}``."""
        return {"num_qubits": self.num_qubits, "gates": [g.to_dict() for g in self.gates]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Circuit":
        return cls(num_qubits=int(data["num_qubits"]),
                   gates=tuple(Gate.from_dict(g) for g in data.get("gates", [])))

    def __len__(self) -> int:
        return len(self.gates)


# ============================================================================
# Parameters
# ============================================================================

@dataclass(frozen=True)
class QaoaParameters:
    """Per-layer (γ, β) angles."""

    layers: Tuple[Tuple[float, float], ...]

    @classmethod
    def from_vector(cls, vector: Sequence[float]) -> "QaoaParameters":
        """
        Parse the flat ``[γ1, β1, γ2, β2, ...]`` layout used by the optimizer.

        Raises:
            InvalidArgument: If the vector is empty, odd-length or not finite
        """
        values = np.asarray(vector, dtype=float).ravel()
        if values.size == 0 or values.size % 2:
            raise InvalidArgument(
                f"Parameter vector must hold (γ, β) pairs, got {values.size} values"
            )
        if not np.all(np.isfinite(values)):
            raise InvalidArgument(f"Parameter vector contains non-finite values: {values}")
        return cls(layers=tuple((float(values[2 * i]), float(values[2 * i + 1]))
                                for i in range(values.size // 2)))

    @property
    def num_layers(self) -> int:
        return len(self.layers)

    def to_vector(self) -> np.ndarray:
        return np.array([angle for pair in self.layers for angle in pair], dtype=float)


ParameterInput = Union[QaoaParameters, Sequence[Tuple[float, float]], Sequence[float], np.ndarray]


def _coerce_parameters(params: ParameterInput) -> QaoaParameters:
    if isinstance(params, QaoaParameters):
        return params
    try:
        values = np.asarray(params, dtype=float)
    except (TypeError, ValueError) as e:
        raise InvalidArgument(f"Malformed QAOA parameters: {e}")
    if values.ndim == 2 and values.shape[1] != 2:
        raise InvalidArgument(f"Layer parameters must be (γ, β) pairs, got shape {values.shape}")
    if values.ndim > 2:
        raise InvalidArgument(f"Malformed QAOA parameters with shape {values.shape}")
    return QaoaParameters.from_vector(values.ravel())


# ============================================================================
# Builder
# ============================================================================

def build_qaoa_circuit(
    problem_hamiltonian: ProblemHamiltonian,
    mixer_hamiltonian: MixerHamiltonian,
    params: ParameterInput,
) -> Circuit:
    """
    Build the QAOA circuit for the given angles.

    Args:
        problem_hamiltonian: Cost Hamiltonian H_C
        mixer_hamiltonian: Mixer H_M over the same qubits
        params: ``QaoaParameters``, ``[(γ, β), ...]`` pairs or a flat ``[γ1, β1, ...]`` vector

    Returns:
        Circuit with n H gates followed by p cost/mixer layers

    Raises:
        EncodingError: If a term addresses a qubit outside the register or the
            mixer and cost Hamiltonians disagree on the qubit count
        InvalidArgument: If the parameters are malformed
    """
    n = problem_hamiltonian.num_qubits
    if n < 1:
        raise EncodingError("Problem Hamiltonian has no qubits")
    if mixer_hamiltonian.num_qubits != n:
        raise EncodingError(
            f"Mixer acts on {mixer_hamiltonian.num_qubits} qubits, problem on {n}"
        )
    for term in problem_hamiltonian.terms:
        if any(q < 0 or q >= n for q in term.qubits):
            raise EncodingError(f"Term on qubits {term.qubits} outside register of {n} qubits")

    parameters = _coerce_parameters(params)

    gates: List[Gate] = [Gate(GateKind.H, (q,)) for q in range(n)]

    for gamma, beta in parameters.layers:
        for term in problem_hamiltonian.terms:
            angle = 2.0 * gamma * term.coefficient
            if term.kind is PauliKind.Z:
                gates.append(Gate(GateKind.RZ, term.qubits, angle))
            else:
                a, b = term.qubits
                gates.append(Gate(GateKind.CNOT, (a, b)))
                gates.append(Gate(GateKind.RZ, (b,), angle))
                gates.append(Gate(GateKind.CNOT, (a, b)))
        for q in mixer_hamiltonian.qubits:
            gates.append(Gate(GateKind.RX, (q,), 2.0 * beta))

    circuit = Circuit(num_qubits=n, gates=tuple(gates))
    logger.debug(
        f"Built QAOA circuit: {n} qubits, p={parameters.num_layers}, {len(gates)} gates"
    )
    return circuit


def expected_gate_count(problem_hamiltonian: ProblemHamiltonian, layers: int) -> int:
    """Number of gates ``build_qaoa_circuit`` emits for ``layers`` layers."""
    n = problem_hamiltonian.num_qubits
    per_layer = len(problem_hamiltonian.z_terms) + 3 * len(problem_hamiltonian.zz_terms) + n
    return n + layers * per_layer
