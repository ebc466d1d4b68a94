"""
Portfolio Selection Problem Implementation.

Binary mean-variance asset selection: choose exactly k of n assets to
maximize return while penalizing covariance risk, optionally under an integer
budget.

Problem Definition:
    minimize   −λ_r Σᵢ μᵢ xᵢ + λ_σ Σᵢⱼ Σᵢⱼ xᵢ xⱼ
    subject to Σᵢ xᵢ = k                       (cardinality)
               Σᵢ priceᵢ xᵢ ≤ budget            (optional, integer prices)

    where xᵢ = 1 selects asset i, μ are expected returns and Σ is the
    covariance matrix.

QUBO Form:
    The cardinality equality becomes λ(Σxᵢ − k)². The budget inequality gets a
    slack register so that it also becomes a squared penalty. Both are
    produced by the shared encoder.

Example Usage:
    >>> from qaoa_core.problems.portfolio import PortfolioProblem
    >>> problem = PortfolioProblem(num_assets=4, num_selected=2)
    >>> problem.generate(seed=42)
    >>> encoding = problem.encode()
    >>> encoding.num_qubits
    4
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple
import logging

import numpy as np
import networkx as nx

from qaoa_core.problems.problem_base import ProblemBase
from qaoa_core.problems.qubo_encoder import Constraint, ConstraintSense, ObjectiveTerm, Variable


logger = logging.getLogger(__name__)


class PortfolioProblem(ProblemBase):
    """
    Cardinality-constrained portfolio selection.

    Variable ``a{i}`` is 1 when asset i is held.

    Attributes:
        num_assets (int): Number of candidate assets (n)
        num_selected (int): Number of assets to hold (k)
        return_weight (float): λ_r, weight of the return term
        risk_weight (float): λ_σ, weight of the covariance term
        prices (Optional[np.ndarray]): Integer price per asset (budget constraint)
        budget (Optional[int]): Maximum total price of the selection
        expected_returns (np.ndarray): μ (after generation)
        covariance_matrix (np.ndarray): Σ (after generation)
    """

    def __init__(
        self,
        num_assets: int,
        num_selected: int,
        return_weight: float = 1.0,
        risk_weight: float = 0.5,
        budget: Optional[int] = None,
    ):
        """
        Args:
            num_assets: Total number of assets to choose from (n)
            num_selected: Number of assets to select (k)
            return_weight: Weight of expected return in the objective
            risk_weight: Weight of covariance risk in the objective
            budget: Maximum total price (enables the budget constraint)

        Raises:
            ValueError: If parameters are invalid
        """
        super().__init__()

        if num_assets < 2:
            raise ValueError("num_assets must be at least 2")

        if num_selected < 1 or num_selected > num_assets:
            raise ValueError(f"num_selected must be in [1, {num_assets}]")

        if return_weight < 0 or risk_weight < 0:
            raise ValueError("return_weight and risk_weight must be non-negative")

        if budget is not None and budget < 0:
            raise ValueError("budget must be non-negative")

        self._problem_type = "portfolio"
        self._problem_size = num_assets
        self._complexity_class = "NP-hard"

        self.num_assets = num_assets
        self.num_selected = num_selected
        self.return_weight = return_weight
        self.risk_weight = risk_weight
        self.budget = budget

        self.expected_returns: Optional[np.ndarray] = None
        self.covariance_matrix: Optional[np.ndarray] = None
        self.prices: Optional[np.ndarray] = None

    def generate(
        self,
        seed: Optional[int] = None,
        return_range: Tuple[float, float] = (0.05, 0.20),
        risk_range: Tuple[float, float] = (0.10, 0.30),
        correlation_strength: float = 0.5,
        price_range: Tuple[int, int] = (1, 5),
        **kwargs
    ) -> None:
        """
        Generate synthetic returns, a valid covariance matrix and integer prices.

        Args:
            seed: Random seed for reproducibility
            return_range: (min, max) expected returns
            risk_range: (min, max) volatilities
            correlation_strength: Average pairwise correlation in [0, 1]
            price_range: Inclusive (min, max) integer prices
            **kwargs: Additional arguments (ignored)

        Raises:
            ValueError: If parameters are invalid
        """
        if return_range[0] >= return_range[1]:
            raise ValueError("return_range must be (min, max) with min < max")

        if risk_range[0] <= 0 or risk_range[1] <= risk_range[0]:
            raise ValueError("risk_range must be (min, max) with 0 < min < max")

        if not (0.0 <= correlation_strength <= 1.0):
            raise ValueError("correlation_strength must be in [0, 1]")

        if price_range[0] < 0 or price_range[1] < price_range[0]:
            raise ValueError("price_range must be (min, max) with 0 <= min <= max")

        rng = np.random.default_rng(seed)
        n = self.num_assets

        expected_returns = rng.uniform(*return_range, size=n)
        volatilities = rng.uniform(*risk_range, size=n)

        correlation = np.eye(n)
        for i in range(n):
            for j in range(i + 1, n):
                corr = rng.uniform(max(0.0, correlation_strength - 0.3),
                                   min(1.0, correlation_strength + 0.3))
                correlation[i, j] = correlation[j, i] = corr

        # Clip eigenvalues to keep the matrix positive definite, then renormalize
        eigenvalues, eigenvectors = np.linalg.eigh(correlation)
        correlation = eigenvectors @ np.diag(np.maximum(eigenvalues, 0.01)) @ eigenvectors.T
        d = np.sqrt(np.diag(correlation))
        correlation = correlation / np.outer(d, d)

        covariance = np.diag(volatilities) @ correlation @ np.diag(volatilities)
        prices = rng.integers(price_range[0], price_range[1] + 1, size=n)

        self.load(expected_returns, covariance, prices)

    def load(
        self,
        expected_returns: Sequence[float],
        covariance_matrix: np.ndarray,
        prices: Optional[Sequence[int]] = None,
    ) -> None:
        """
        Use explicit market data instead of generated data.

        Raises:
            ValueError: If shapes do not match ``num_assets`` or prices are not integers
        """
        expected_returns = np.asarray(expected_returns, dtype=float)
        covariance_matrix = np.asarray(covariance_matrix, dtype=float)
        n = self.num_assets

        if expected_returns.shape != (n,):
            raise ValueError(f"expected_returns must have shape ({n},)")
        if covariance_matrix.shape != (n, n):
            raise ValueError(f"covariance_matrix must have shape ({n}, {n})")
        if not np.allclose(covariance_matrix, covariance_matrix.T):
            raise ValueError("covariance_matrix must be symmetric")

        if prices is not None:
            prices = np.asarray(prices)
            if prices.shape != (n,) or not np.all(prices == np.round(prices)):
                raise ValueError(f"prices must be {n} integers")
            prices = prices.astype(int)
        elif self.budget is not None:
            raise ValueError("prices are required when a budget is set")

        self.expected_returns = expected_returns
        self.covariance_matrix = covariance_matrix
        self.prices = prices
        self._generated = True

    # ========================================================================
    # Declarative Model
    # ========================================================================

    def variables(self) -> List[Variable]:
        return [Variable.binary(i, f"a{i}") for i in range(self.num_assets)]

    def objective(self) -> List[ObjectiveTerm]:
        self._require_generated()
        terms: List[ObjectiveTerm] = []
        n = self.num_assets
        for i in range(n):
            diagonal = (-self.return_weight * self.expected_returns[i]
                        + self.risk_weight * self.covariance_matrix[i, i])
            terms.append(ObjectiveTerm(float(diagonal), (f"a{i}",)))
        for i in range(n):
            for j in range(i + 1, n):
                coupling = 2.0 * self.risk_weight * self.covariance_matrix[i, j]
                if coupling != 0.0:
                    terms.append(ObjectiveTerm(float(coupling), (f"a{i}", f"a{j}")))
        return terms

    def constraints(self) -> List[Constraint]:
        constraints = [
            Constraint.of(
                [(1.0, f"a{i}") for i in range(self.num_assets)],
                ConstraintSense.EQ,
                self.num_selected,
                name="cardinality",
            )
        ]
        if self.budget is not None:
            constraints.append(
                Constraint.of(
                    [(float(self.prices[i]), f"a{i}") for i in range(self.num_assets)],
                    ConstraintSense.LE,
                    self.budget,
                    name="budget",
                )
            )
        return constraints

    def calculate_cost(self, solution: Dict[str, Any]) -> float:
        """
        Risk-adjusted negative return of a selection.

        Raises:
            ValueError: If the selection violates cardinality or budget
        """
        if not self.validate_solution(solution):
            raise ValueError("Invalid solution")

        x = np.array([solution[f"a{i}"] for i in range(self.num_assets)], dtype=float)
        return float(-self.return_weight * self.expected_returns @ x
                     + self.risk_weight * x @ self.covariance_matrix @ x)

    def to_graph(self) -> nx.Graph:
        """Assets as nodes, covariance as edge weights."""
        self._require_generated()
        graph = nx.Graph()
        for i in range(self.num_assets):
            graph.add_node(i, expected_return=float(self.expected_returns[i]))
        for i in range(self.num_assets):
            for j in range(i + 1, self.num_assets):
                if self.covariance_matrix[i, j] != 0.0:
                    graph.add_edge(i, j, weight=float(self.covariance_matrix[i, j]))
        return graph

    def selected_assets(self, solution: Dict[str, Any]) -> List[int]:
        return [i for i in range(self.num_assets) if solution[f"a{i}"] == 1]
