"""
MaxCut Problem Implementation.

Problem Definition:
    Given an undirected weighted graph G = (V, E), partition V into two sets
    so that the total weight of edges crossing the partition is maximized:

        MaxCut(G) = max_{x ∈ {0,1}^n} Σ_{(u,v)∈E} w(u,v) · (x_u ⊕ x_v)

QUBO Form:
    x_u ⊕ x_v = x_u + x_v − 2 x_u x_v, so minimizing the negated cut gives

        cost(x) = Σ_{(u,v)∈E} w(u,v) · (2 x_u x_v − x_u − x_v)

    which has no constraints and therefore no penalty terms.

Example Usage:
    >>> from qaoa_core.problems.maxcut import MaxCutProblem
    >>> problem = MaxCutProblem.from_edges(4, [(0, 1), (1, 2), (2, 3), (3, 0)])
    >>> problem.calculate_cost({"x0": 0, "x1": 1, "x2": 0, "x3": 1})
    -4.0
"""

from typing import Any, Dict, Iterable, List, Optional, Tuple, Union
import itertools
import logging

import numpy as np
import networkx as nx

from qaoa_core.problems.problem_base import ProblemBase
from qaoa_core.problems.qubo_encoder import ObjectiveTerm, Variable


logger = logging.getLogger(__name__)

Edge = Union[Tuple[int, int], Tuple[int, int, float]]


class MaxCutProblem(ProblemBase):
    """
    MaxCut graph partitioning problem.

    Variable ``x{i}`` is 1 when node i is on the T side of the cut.

    Attributes:
        num_nodes (int): Number of nodes in the graph
        graph (nx.Graph): Weighted graph (after generation)
        edge_weights (Dict[Tuple[int, int], float]): Weight per edge (u < v)
    """

    def __init__(self, num_nodes: int):
        """
        Args:
            num_nodes: Number of nodes in the graph (must be >= 2)

        Raises:
            ValueError: If num_nodes < 2
        """
        super().__init__()

        if num_nodes < 2:
            raise ValueError("num_nodes must be at least 2")

        self._problem_type = "maxcut"
        self._problem_size = num_nodes
        self._complexity_class = "NP-hard"

        self.num_nodes = num_nodes
        self.graph: Optional[nx.Graph] = None
        self.edge_weights: Dict[Tuple[int, int], float] = {}

    @classmethod
    def from_edges(cls, num_nodes: int, edges: Iterable[Edge]) -> "MaxCutProblem":
        """
        Build an instance from an explicit edge list.

        Args:
            num_nodes: Number of nodes
            edges: ``(u, v)`` pairs (unit weight) or ``(u, v, weight)`` triples

        Raises:
            ValueError: If an edge references a missing node or is a self-loop
        """
        problem = cls(num_nodes)
        graph = nx.Graph()
        graph.add_nodes_from(range(num_nodes))
        for edge in edges:
            u, v = edge[0], edge[1]
            weight = float(edge[2]) if len(edge) > 2 else 1.0
            if u == v or not (0 <= u < num_nodes and 0 <= v < num_nodes):
                raise ValueError(f"Invalid edge ({u}, {v}) for {num_nodes} nodes")
            graph.add_edge(u, v, weight=weight)
        problem._set_graph(graph)
        return problem

    def generate(
        self,
        seed: Optional[int] = None,
        edge_probability: float = 0.5,
        weight_range: Tuple[float, float] = (1.0, 10.0),
        **kwargs
    ) -> None:
        """
        Generate a connected Erdős-Rényi graph with uniform random weights.

        Args:
            seed: Random seed for reproducibility
            edge_probability: Probability of edge existence (0 < p < 1)
            weight_range: (min_weight, max_weight) for edge weights
            **kwargs: Additional arguments (ignored)

        Raises:
            ValueError: If parameters are out of valid ranges
        """
        if not (0.0 < edge_probability < 1.0):
            raise ValueError("edge_probability must be in (0, 1)")

        if weight_range[0] <= 0 or weight_range[1] < weight_range[0]:
            raise ValueError("weight_range must be (min, max) with 0 < min <= max")

        rng = np.random.default_rng(seed)
        graph = nx.erdos_renyi_graph(self.num_nodes, edge_probability, seed=seed)

        # Connect consecutive components so the cut is meaningful
        if not nx.is_connected(graph):
            components = [sorted(c) for c in nx.connected_components(graph)]
            for first, second in zip(components, components[1:]):
                graph.add_edge(int(rng.choice(first)), int(rng.choice(second)))

        min_weight, max_weight = weight_range
        for u, v in graph.edges():
            graph[u][v]["weight"] = float(rng.uniform(min_weight, max_weight))

        self._set_graph(graph)
        logger.info(f"Generated MaxCut graph: {self.num_nodes} nodes, {len(self.edge_weights)} edges")

    def _set_graph(self, graph: nx.Graph) -> None:
        self.graph = graph
        self.edge_weights = {
            (min(u, v), max(u, v)): data.get("weight", 1.0)
            for u, v, data in graph.edges(data=True)
        }
        self._generated = True

    # ========================================================================
    # Declarative Model
    # ========================================================================

    def variables(self) -> List[Variable]:
        return [Variable.binary(i, f"x{i}") for i in range(self.num_nodes)]

    def objective(self) -> List[ObjectiveTerm]:
        self._require_generated()
        terms: List[ObjectiveTerm] = []
        for (u, v), weight in sorted(self.edge_weights.items()):
            terms.append(ObjectiveTerm(-weight, (f"x{u}",)))
            terms.append(ObjectiveTerm(-weight, (f"x{v}",)))
            terms.append(ObjectiveTerm(2.0 * weight, (f"x{u}", f"x{v}")))
        return terms

    def calculate_cost(self, solution: Dict[str, Any]) -> float:
        """
        Negated cut weight of a partition.

        Raises:
            ValueError: If the solution is not a binary assignment of every node
        """
        if not self.validate_solution(solution):
            raise ValueError("Invalid solution")

        return -self._cut_value(solution)

    def _cut_value(self, solution: Dict[str, Any]) -> float:
        return float(sum(
            weight for (u, v), weight in self.edge_weights.items()
            if solution[f"x{u}"] != solution[f"x{v}"]
        ))

    def to_graph(self) -> nx.Graph:
        self._require_generated()
        return self.graph

    def partition(self, solution: Dict[str, Any]) -> Tuple[List[int], List[int]]:
        """Split nodes into the two sides of the cut."""
        side_s = [i for i in range(self.num_nodes) if solution[f"x{i}"] == 0]
        side_t = [i for i in range(self.num_nodes) if solution[f"x{i}"] == 1]
        return side_s, side_t

    def get_optimal_solution_brute_force(self) -> Tuple[Dict[str, int], float]:
        """
        Optimal partition by exhaustive search (feasible for n <= 20).

        Node 0 is fixed to side S since flipping every node gives the same cut.

        Returns:
            (optimal solution, optimal cost)
        """
        self._require_generated()
        if self.num_nodes > 20:
            raise ValueError(f"Brute force limited to 20 nodes, got {self.num_nodes}")

        best_solution: Optional[Dict[str, int]] = None
        best_cost = float("inf")
        for rest in itertools.product((0, 1), repeat=self.num_nodes - 1):
            solution = {f"x{i}": bit for i, bit in enumerate((0,) + rest)}
            cost = -self._cut_value(solution)
            if cost < best_cost:
                best_solution, best_cost = solution, cost
        return best_solution, best_cost
