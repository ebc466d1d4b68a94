"""
Immutable QUBO model.

A QUBO (Quadratic Unconstrained Binary Optimization) instance is

    minimize  E(x) = offset + Σ_{i≤j} Q[i,j] · x_i · x_j,   x ∈ {0,1}^n

Diagonal entries (i == j) are linear terms because x_i² = x_i for binary
variables; off-diagonal entries are pairwise couplings. Only the upper
triangle is stored, keyed by ``(i, j)`` with ``i <= j``.

Accumulation is always an explicit fold into a fresh mapping: adding a term
that already exists sums the coefficients, and every combinator returns a new
model. The stored mapping is exposed read-only.

Example Usage
-------------
```python
from qaoa_core.problems.qubo_model import QuboModel

# x0 + x1 - 2 x0 x1  (minimized by x0 == x1)
qubo = QuboModel.from_terms(2, [((0, 0), 1.0), ((1, 1), 1.0), ((0, 1), -2.0)])
print(qubo.evaluate([1, 1]))  # 0.0
print(qubo.to_matrix())
```
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
import logging
import math

import numpy as np

from qaoa_core.errors import EncodingError


logger = logging.getLogger(__name__)

TermKey = Tuple[int, int]


def _normalize_key(i: int, j: int, num_variables: int) -> TermKey:
    """Order a pair as (min, max) and check it addresses existing variables."""
    if not isinstance(i, (int, np.integer)) or not isinstance(j, (int, np.integer)):
        raise EncodingError(f"QUBO indices must be integers, got ({i!r}, {j!r})")
    i, j = int(i), int(j)
    if i < 0 or j < 0:
        raise EncodingError(f"QUBO indices must be non-negative, got ({i}, {j})")
    if i >= num_variables or j >= num_variables:
        raise EncodingError(
            f"QUBO term ({i}, {j}) out of range for {num_variables} variables"
        )
    return (i, j) if i <= j else (j, i)


@dataclass(frozen=True)
class QuboModel:
    """
    Immutable QUBO instance.

    Attributes:
        num_variables: Number of binary variables (qubits)
        terms: Read-only mapping ``(i, j) -> coefficient`` with ``i <= j``
        offset: Constant energy contribution
        variable_names: Optional label per variable index
    """

    num_variables: int
    terms: Mapping[TermKey, float] = field(default_factory=lambda: MappingProxyType({}))
    offset: float = 0.0
    variable_names: Tuple[str, ...] = ()

    def __post_init__(self):
        if self.num_variables < 0:
            raise EncodingError("num_variables must be non-negative")
        if self.variable_names and len(self.variable_names) != self.num_variables:
            raise EncodingError(
                f"Expected {self.num_variables} variable names, got {len(self.variable_names)}"
            )
        if not isinstance(self.terms, MappingProxyType):
            object.__setattr__(self, "terms", MappingProxyType(dict(self.terms)))

    # ========================================================================
    # Construction
    # ========================================================================

    @classmethod
    def from_terms(
        cls,
        num_variables: int,
        terms: Iterable[Tuple[TermKey, float]],
        offset: float = 0.0,
        variable_names: Sequence[str] = (),
    ) -> "QuboModel":
        """
        Build a model by folding ``((i, j), coefficient)`` contributions.

        Duplicate keys, including ``(j, i)`` for ``(i, j)``, are summed.

        Raises:
            EncodingError: If an index is out of range or a coefficient is not finite
        """
        accumulated: Dict[TermKey, float] = {}
        for (i, j), coefficient in terms:
            if not math.isfinite(coefficient):
                raise EncodingError(f"Non-finite QUBO coefficient {coefficient} at ({i}, {j})")
            key = _normalize_key(i, j, num_variables)
            accumulated[key] = accumulated.get(key, 0.0) + float(coefficient)

        if not math.isfinite(offset):
            raise EncodingError(f"Non-finite QUBO offset {offset}")

        return cls(
            num_variables=num_variables,
            terms=MappingProxyType(accumulated),
            offset=float(offset),
            variable_names=tuple(variable_names),
        )

    @classmethod
    def from_matrix(cls, matrix: np.ndarray, offset: float = 0.0) -> "QuboModel":
        """
        Build a model from a square matrix.

        Symmetric and upper-triangular inputs both work: ``Q[i,j]`` and
        ``Q[j,i]`` are summed into the ``(i, j)`` coupling.

        Raises:
            EncodingError: If the matrix is not square
        """
        matrix = np.asarray(matrix, dtype=float)
        if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
            raise EncodingError(f"QUBO matrix must be square, got shape {matrix.shape}")

        n = matrix.shape[0]
        contributions = [
            ((i, j), matrix[i, j])
            for i in range(n)
            for j in range(n)
            if matrix[i, j] != 0.0
        ]
        return cls.from_terms(n, contributions, offset=offset)

    def with_terms(
        self,
        terms: Iterable[Tuple[TermKey, float]],
        offset: float = 0.0,
    ) -> "QuboModel":
        """Return a new model with extra contributions folded in."""
        return QuboModel.from_terms(
            self.num_variables,
            list(self.terms.items()) + list(terms),
            offset=self.offset + offset,
            variable_names=self.variable_names,
        )

    def merge(self, other: "QuboModel") -> "QuboModel":
        """
        Sum two models over the same variables.

        Raises:
            EncodingError: If the variable counts differ
        """
        if other.num_variables != self.num_variables:
            raise EncodingError(
                f"Cannot merge QUBOs over {self.num_variables} and {other.num_variables} variables"
            )
        return self.with_terms(other.terms.items(), offset=other.offset)

    # ========================================================================
    # Evaluation
    # ========================================================================

    def evaluate(self, bits: Sequence[int]) -> float:
        """
        Energy of a binary assignment.

        Args:
            bits: Sequence of 0/1 values, index i is variable i

        Raises:
            EncodingError: If the assignment has the wrong length or non-binary values
        """
        if len(bits) != self.num_variables:
            raise EncodingError(
                f"Assignment has {len(bits)} bits, QUBO has {self.num_variables} variables"
            )
        if any(b not in (0, 1) for b in bits):
            raise EncodingError(f"Assignment must be binary, got {list(bits)}")

        energy = self.offset
        for (i, j), coefficient in self.terms.items():
            if bits[i] and bits[j]:
                energy += coefficient
        return energy

    def to_matrix(self) -> np.ndarray:
        """Upper-triangular coefficient matrix (offset excluded)."""
        matrix = np.zeros((self.num_variables, self.num_variables))
        for (i, j), coefficient in self.terms.items():
            matrix[i, j] = coefficient
        return matrix

    @property
    def linear_terms(self) -> Dict[int, float]:
        """Diagonal coefficients keyed by variable index."""
        return {i: c for (i, j), c in self.terms.items() if i == j}

    @property
    def quadratic_terms(self) -> Dict[TermKey, float]:
        """Off-diagonal coefficients keyed by (i, j)."""
        return {(i, j): c for (i, j), c in self.terms.items() if i != j}

    def name_of(self, index: int) -> Optional[str]:
        """Label of variable ``index`` if names were supplied."""
        if self.variable_names:
            return self.variable_names[index]
        return None

    def __repr__(self) -> str:
        return (f"QuboModel(num_variables={self.num_variables}, "
                f"terms={len(self.terms)}, offset={self.offset:.4g})")


def brute_force_minimum(qubo: QuboModel) -> Tuple[List[int], float]:
    """
    Exhaustively find a minimum-energy assignment.

    Only practical for small instances (2^n evaluations); used to validate
    encodings and solver output.
    """
    if qubo.num_variables > 20:
        raise EncodingError(
            f"Brute force limited to 20 variables, got {qubo.num_variables}"
        )

    best_bits: List[int] = [0] * qubo.num_variables
    best_energy = math.inf
    for index in range(2 ** qubo.num_variables):
        bits = [(index >> q) & 1 for q in range(qubo.num_variables)]
        energy = qubo.evaluate(bits)
        if energy < best_energy:
            best_bits, best_energy = bits, energy

    logger.debug(f"Brute force minimum {best_energy:.4f} at {best_bits}")
    return best_bits, best_energy
