"""
Hamiltonian Builder: QUBO to Ising cost Hamiltonian and QAOA mixer.

Binary to Spin Mapping
----------------------
QUBO variables x_i ∈ {0, 1} map to Pauli-Z eigenvalues s_i ∈ {+1, −1} via

    x_i = (1 − s_i) / 2

so |0⟩ (s = +1) means x = 0 and |1⟩ (s = −1) means x = 1. Substituting:

    c · x_i       =  c/2 − (c/2) Z_i
    c · x_i x_j   =  c/4 − (c/4) Z_i − (c/4) Z_j + (c/4) Z_i Z_j

Single-Z corrections from every coupling are folded into the existing Z_i
term by key, so each qubit and each pair appears at most once. The constant
is kept: ``ProblemHamiltonian.energy(bits)`` equals ``QuboModel.evaluate(bits)``
exactly, which lets sampled energies be compared with classical QUBO costs.

Term Order
----------
Single-Z terms come first (ascending qubit), then ZZ terms (ascending pair).
The circuit builder emits gates in this order.

Example:
    For the 2-node MaxCut QUBO  −x0 − x1 + 2 x0 x1:

        H = −0.5 + 0 Z_0 + 0 Z_1 + 0.5 Z_0 Z_1

    (the linear Z terms cancel and are dropped) so |01⟩ and |10⟩ have energy −1
    and |00⟩, |11⟩ have energy 0.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Sequence, Tuple
import logging

import numpy as np

from qaoa_core.errors import EncodingError
from qaoa_core.problems.qubo_model import QuboModel


logger = logging.getLogger(__name__)

# Terms with smaller magnitude are dropped after folding
COEFFICIENT_CUTOFF = 1e-12


class PauliKind(str, Enum):
    """Diagonal Pauli products appearing in a QUBO Hamiltonian."""
    Z = "Z"
    ZZ = "ZZ"


@dataclass(frozen=True)
class PauliTerm:
    """``coefficient × Z_q`` (one qubit) or ``coefficient × Z_a Z_b`` (two qubits)."""

    coefficient: float
    qubits: Tuple[int, ...]
    kind: PauliKind

    def __post_init__(self):
        expected = 1 if self.kind is PauliKind.Z else 2
        if len(self.qubits) != expected:
            raise EncodingError(
                f"{self.kind.value} term needs {expected} qubit(s), got {self.qubits}"
            )
        if self.kind is PauliKind.ZZ and self.qubits[0] == self.qubits[1]:
            raise EncodingError(f"ZZ term acts on the same qubit twice: {self.qubits}")


@dataclass(frozen=True)
class ProblemHamiltonian:
    """
    Diagonal cost Hamiltonian  H_C = constant + Σ h_i Z_i + Σ J_ij Z_i Z_j.

    Attributes:
        num_qubits: Number of qubits the terms act on
        terms: Ordered Pauli terms (single-Z first, then ZZ)
        constant: Identity coefficient
    """

    num_qubits: int
    terms: Tuple[PauliTerm, ...]
    constant: float = 0.0

    @property
    def z_terms(self) -> List[PauliTerm]:
        return [t for t in self.terms if t.kind is PauliKind.Z]

    @property
    def zz_terms(self) -> List[PauliTerm]:
        return [t for t in self.terms if t.kind is PauliKind.ZZ]

    def energy(self, bits) -> float:
        """
        Energy of a computational basis state.

        Args:
            bits: 0/1 sequence indexed by qubit, or a bitstring with qubit 0 first
        """
        if isinstance(bits, str):
            bits = [int(ch) for ch in bits]
        if len(bits) != self.num_qubits:
            raise EncodingError(
                f"Basis state has {len(bits)} bits, Hamiltonian has {self.num_qubits} qubits"
            )

        spins = [1 - 2 * int(b) for b in bits]
        energy = self.constant
        for term in self.terms:
            product = term.coefficient
            for q in term.qubits:
                product *= spins[q]
            energy += product
        return energy

    def diagonal(self) -> np.ndarray:
        """
        All 2^n eigenvalues, indexed by basis state (qubit q is bit q of the index).
        """
        indices = np.arange(2 ** self.num_qubits)
        spins = [1 - 2 * ((indices >> q) & 1) for q in range(self.num_qubits)]
        values = np.full(indices.shape, self.constant, dtype=float)
        for term in self.terms:
            if term.kind is PauliKind.Z:
                values += term.coefficient * spins[term.qubits[0]]
            else:
                a, b = term.qubits
                values += term.coefficient * spins[a] * spins[b]
        return values

    def expectation(self, probabilities: Sequence[float]) -> float:
        """Exact ⟨H_C⟩ for a probability vector over basis states."""
        probabilities = np.asarray(probabilities, dtype=float)
        if probabilities.shape != (2 ** self.num_qubits,):
            raise EncodingError(
                f"Expected {2 ** self.num_qubits} probabilities, got {probabilities.shape}"
            )
        return float(probabilities @ self.diagonal())


@dataclass(frozen=True)
class MixerHamiltonian:
    """Transverse-field mixer  H_M = Σ_q X_q  (unit weight on every qubit)."""

    num_qubits: int

    @property
    def qubits(self) -> range:
        return range(self.num_qubits)


def build_problem_hamiltonian(qubo: QuboModel) -> ProblemHamiltonian:
    """
    Convert a QUBO model to its Ising cost Hamiltonian.

    Args:
        qubo: QUBO model over n variables

    Returns:
        ProblemHamiltonian over n qubits with the QUBO offset carried into the constant

    Raises:
        EncodingError: If the QUBO has no variables
    """
    if qubo.num_variables < 1:
        raise EncodingError("Cannot build a Hamiltonian for a QUBO with no variables")

    constant = qubo.offset
    linear: Dict[int, float] = {}
    couplings: Dict[Tuple[int, int], float] = {}

    for (i, j), c in qubo.terms.items():
        if i == j:
            constant += c / 2.0
            linear[i] = linear.get(i, 0.0) - c / 2.0
        else:
            constant += c / 4.0
            linear[i] = linear.get(i, 0.0) - c / 4.0
            linear[j] = linear.get(j, 0.0) - c / 4.0
            couplings[(i, j)] = couplings.get((i, j), 0.0) + c / 4.0

    terms: List[PauliTerm] = []
    for q in sorted(linear):
        if abs(linear[q]) >= COEFFICIENT_CUTOFF:
            terms.append(PauliTerm(linear[q], (q,), PauliKind.Z))
    for pair in sorted(couplings):
        if abs(couplings[pair]) >= COEFFICIENT_CUTOFF:
            terms.append(PauliTerm(couplings[pair], pair, PauliKind.ZZ))

    if not terms:
        logger.warning("QUBO has no non-zero terms, Hamiltonian is a pure constant")

    hamiltonian = ProblemHamiltonian(num_qubits=qubo.num_variables, terms=tuple(terms), constant=constant)
    logger.debug(
        f"Converted QUBO to Hamiltonian: {len(terms)} terms "
        f"({qubo.num_variables} qubits, {len(hamiltonian.z_terms)} local fields, "
        f"{len(hamiltonian.zz_terms)} couplings)"
    )
    return hamiltonian


def build_mixer_hamiltonian(num_qubits: int) -> MixerHamiltonian:
    """
    Raises:
        EncodingError: If num_qubits < 1
    """
    if num_qubits < 1:
        raise EncodingError(f"Mixer needs at least one qubit, got {num_qubits}")
    return MixerHamiltonian(num_qubits=num_qubits)
