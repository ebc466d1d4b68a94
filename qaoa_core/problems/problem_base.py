"""
Abstract base class for optimization problems in the QAOA core pipeline.

A problem describes itself declaratively (variables, objective terms and
constraints) and the shared ``QuboEncoder`` turns that description into a
penalty-form QUBO. Problem classes never build QUBO matrices by hand.

Problem Representations
-----------------------
1. **Graph Representation (NetworkX)**:
   - Natural for problems with pairwise relationships (cuts, coloring)
   - Used for feature extraction and classical reference solutions

2. **QUBO Representation**:
   - minimize offset + x^T Q x, x ∈ {0,1}^n, Q upper-triangular
   - Input to the Hamiltonian builder and therefore to QAOA

Example Usage
-------------
```python
from qaoa_core.problems.maxcut import MaxCutProblem

problem = MaxCutProblem(num_nodes=5)
problem.generate(seed=42, edge_probability=0.6)

encoding = problem.encode()          # QuboEncoding
print(encoding.qubo)                 # QuboModel(num_variables=5, ...)

solution = {f"x{i}": i % 2 for i in range(5)}
print(problem.validate_solution(solution))
print(problem.calculate_cost(solution))
```
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
import logging

import numpy as np
import networkx as nx

from qaoa_core.config import QuboConfig
from qaoa_core.errors import EncodingError
from qaoa_core.problems.qubo_encoder import (
    Constraint,
    ObjectiveTerm,
    QuboEncoder,
    QuboEncoding,
    Variable,
)


logger = logging.getLogger(__name__)


class ProblemBase(ABC):
    """
    Abstract base class for optimization problems.

    Subclasses declare their decision variables, objective and constraints;
    this class provides encoding, validation and metadata on top of them.

    Attributes:
        problem_type (str): Type identifier ('maxcut', 'portfolio', 'graph_coloring')
        problem_size (int): Problem dimension (nodes, assets)
        complexity_class (str): Computational complexity ('P', 'NP', 'NP-hard')

    Subclass Implementation Requirements:
        - Implement all @abstractmethod methods
        - Set _problem_type, _problem_size, _complexity_class in __init__
        - Set _generated once the instance data exists
    """

    def __init__(self):
        self._problem_type: str = "unknown"
        self._problem_size: int = 0
        self._complexity_class: str = "unknown"
        self._generated: bool = False

    @property
    def problem_type(self) -> str:
        return self._problem_type

    @property
    def problem_size(self) -> int:
        return self._problem_size

    @property
    def complexity_class(self) -> str:
        return self._complexity_class

    @property
    def is_generated(self) -> bool:
        """Whether instance data has been generated or loaded."""
        return self._generated

    # ========================================================================
    # Abstract Methods
    # ========================================================================

    @abstractmethod
    def generate(self, seed: Optional[int] = None, **kwargs) -> None:
        """
        Generate a random problem instance.

        Args:
            seed: Random seed for reproducibility
            **kwargs: Problem-specific generation parameters
        """
        pass

    @abstractmethod
    def variables(self) -> List[Variable]:
        """Decision variables with contiguous indices starting at 0."""
        pass

    @abstractmethod
    def objective(self) -> List[ObjectiveTerm]:
        """
        Objective terms to minimize.

        Maximization problems return negated coefficients so that lower is
        better throughout the pipeline.
        """
        pass

    def constraints(self) -> List[Constraint]:
        """Constraints of the problem (none by default)."""
        return []

    @abstractmethod
    def calculate_cost(self, solution: Dict[str, Any]) -> float:
        """
        Objective value of a solution (lower is better).

        Args:
            solution: Mapping from variable name to value

        Raises:
            ValueError: If problem not generated or solution malformed
        """
        pass

    @abstractmethod
    def to_graph(self) -> nx.Graph:
        """NetworkX graph describing the problem structure."""
        pass

    # ========================================================================
    # Concrete Methods
    # ========================================================================

    def encode(self, config: Optional[QuboConfig] = None) -> QuboEncoding:
        """
        Encode the problem as a penalty-form QUBO.

        Args:
            config: Penalty configuration (defaults to ``QuboConfig()``)

        Raises:
            ValueError: If the problem has not been generated
            EncodingError: If the declarations are malformed
        """
        self._require_generated()
        encoding = QuboEncoder(config).encode(self.variables(), self.constraints(), self.objective())
        logger.debug(f"{self.problem_type} encoded into {encoding.num_qubits} qubits")
        return encoding

    def to_qubo(self, config: Optional[QuboConfig] = None) -> np.ndarray:
        """Upper-triangular QUBO matrix (offset dropped)."""
        return self.encode(config).qubo.to_matrix()

    def validate_solution(self, solution: Dict[str, Any]) -> bool:
        """
        Check a solution against variable domains and constraints.

        Returns False rather than raising for any malformed or infeasible solution.
        """
        if not self._generated:
            return False

        encoding = self.encode()
        try:
            bits = encoding.encode_assignment(solution)
        except EncodingError as e:
            logger.debug(f"Solution rejected: {e}")
            return False
        return encoding.decode(bits).is_valid

    def get_metadata(self) -> Dict[str, Any]:
        """Problem characteristics useful for logging and result metadata."""
        self._require_generated()
        encoding = self.encode()
        qubo = encoding.qubo
        possible_pairs = qubo.num_variables * (qubo.num_variables - 1) / 2
        return {
            "problem_type": self.problem_type,
            "problem_size": self.problem_size,
            "complexity_class": self.complexity_class,
            "num_variables": len(encoding.variables),
            "num_constraints": len(encoding.constraints),
            "num_qubits": qubo.num_variables,
            "num_slack_qubits": encoding.num_slack_qubits,
            "qubo_terms": len(qubo.terms),
            "qubo_density": (len(qubo.quadratic_terms) / possible_pairs) if possible_pairs else 0.0,
        }

    def _require_generated(self) -> None:
        if not self._generated:
            raise ValueError(f"{self.problem_type} problem not generated. Call generate() first.")

    def __repr__(self) -> str:
        return (f"{self.__class__.__name__}("
                f"problem_type='{self.problem_type}', "
                f"problem_size={self.problem_size}, "
                f"generated={self._generated})")

    def __str__(self) -> str:
        return f"{self.problem_type.upper()} Problem (size={self.problem_size}, {self.complexity_class})"
