"""
Solution Decoder: measurement histograms to ranked domain solutions.

Every distinct bitstring in the final histogram is scored with its classical
QUBO cost and decoded through the ``QuboEncoding`` layout. Candidates are
ranked by cost (ties: more frequent first, then lexicographic bitstring), and
the decoder reports both the best *valid* candidate (all one-hot groups
well-formed, all constraints satisfied) and the best candidate overall.

Invalid decodings are kept in the ranking with their reasons attached; they
are data, not errors.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Union
import logging

from qaoa_core.backends.backend_base import ExecutionResult, bitstring_to_bits
from qaoa_core.errors import EncodingError
from qaoa_core.problems.qubo_encoder import DecodedAssignment, QuboEncoding


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SolutionCandidate:
    """One observed bitstring with its cost, frequency and decoded values."""

    bitstring: str
    energy: float
    count: int
    frequency: float
    decoded: DecodedAssignment

    @property
    def valid(self) -> bool:
        return self.decoded.is_valid

    @property
    def values(self) -> Dict[str, Any]:
        return self.decoded.as_dict()

    @property
    def bits(self) -> List[int]:
        return bitstring_to_bits(self.bitstring)


@dataclass(frozen=True)
class RankedSolutions:
    """
    Candidates sorted by QUBO cost.

    Attributes:
        candidates: All observed candidates, best first
        best_valid: Lowest-cost valid candidate, or ``None`` if none was observed
        best_overall: Lowest-cost candidate regardless of validity
        total_shots: Shots in the decoded histogram
    """

    candidates: List[SolutionCandidate]
    best_valid: Optional[SolutionCandidate]
    best_overall: Optional[SolutionCandidate]
    total_shots: int

    @property
    def valid_fraction(self) -> float:
        """Share of shots that decoded to valid solutions."""
        if self.total_shots == 0:
            return 0.0
        return sum(c.count for c in self.candidates if c.valid) / self.total_shots

    @property
    def valid_candidates(self) -> List[SolutionCandidate]:
        return [c for c in self.candidates if c.valid]

    def top(self, k: int) -> List[SolutionCandidate]:
        return self.candidates[:k]


class SolutionDecoder:
    """Ranks and decodes measurement histograms."""

    def decode(
        self,
        histogram: Union[ExecutionResult, Mapping[str, int]],
        encoding: QuboEncoding,
    ) -> RankedSolutions:
        """
        Rank every observed bitstring by classical cost.

        Args:
            histogram: ExecutionResult or bitstring-to-count mapping (qubit 0 first)
            encoding: Encoding that produced the measured circuit

        Returns:
            RankedSolutions (``best_overall`` is ``None`` only for an empty histogram)

        Raises:
            EncodingError: If a bitstring length does not match the encoding
        """
        counts = histogram.counts if isinstance(histogram, ExecutionResult) else dict(histogram)
        total_shots = sum(counts.values())

        candidates: List[SolutionCandidate] = []
        for bitstring, count in counts.items():
            if len(bitstring) != encoding.num_qubits:
                raise EncodingError(
                    f"Bitstring '{bitstring}' has {len(bitstring)} bits, "
                    f"encoding uses {encoding.num_qubits} qubits"
                )
            bits = bitstring_to_bits(bitstring)
            candidates.append(
                SolutionCandidate(
                    bitstring=bitstring,
                    energy=encoding.qubo.evaluate(bits),
                    count=count,
                    frequency=count / total_shots if total_shots else 0.0,
                    decoded=encoding.decode(bits),
                )
            )

        candidates.sort(key=lambda c: (c.energy, -c.count, c.bitstring))
        best_valid = next((c for c in candidates if c.valid), None)
        best_overall = candidates[0] if candidates else None

        ranked = RankedSolutions(
            candidates=candidates,
            best_valid=best_valid,
            best_overall=best_overall,
            total_shots=total_shots,
        )

        if best_valid is None and candidates:
            logger.warning(
                f"No valid solution among {len(candidates)} observed bitstrings "
                f"({total_shots} shots)"
            )
        else:
            logger.debug(
                f"Decoded {len(candidates)} bitstrings, valid fraction {ranked.valid_fraction:.3f}"
            )
        return ranked
