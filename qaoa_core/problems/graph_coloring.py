"""
Graph Coloring Problem Implementation.

Assign one of k colors to each node so that as few edges as possible join
same-colored nodes. Each node is a categorical variable, one-hot encoded over
the palette, so a graph with n nodes and k colors uses n·k qubits.

QUBO Form:
    cost(x) = Σ_{(u,v)∈E} Σ_c w(u,v) · x_{u,c} · x_{v,c}
            + Σ_u λ_u (Σ_c x_{u,c} − 1)²

The one-hot penalties come from the encoder; λ_u exceeds the total conflict
weight incident to node u.

Example Usage:
    >>> from qaoa_core.problems.graph_coloring import GraphColoringProblem
    >>> problem = GraphColoringProblem.from_edges(3, [(0, 1), (1, 2)], colors=["red", "green"])
    >>> problem.calculate_cost({"node0": "red", "node1": "green", "node2": "red"})
    0.0
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
import logging

import networkx as nx

from qaoa_core.problems.problem_base import ProblemBase
from qaoa_core.problems.qubo_encoder import ObjectiveTerm, Variable


logger = logging.getLogger(__name__)


class GraphColoringProblem(ProblemBase):
    """
    Minimum-conflict graph coloring with a fixed palette.

    Attributes:
        num_nodes (int): Number of nodes
        colors (Tuple[Any, ...]): Palette labels
        graph (nx.Graph): Conflict graph (after generation)
    """

    def __init__(self, num_nodes: int, colors: Sequence[Any] = ("red", "green", "blue")):
        super().__init__()

        if num_nodes < 1:
            raise ValueError("num_nodes must be at least 1")
        if len(colors) < 1 or len(set(colors)) != len(colors):
            raise ValueError("colors must be a non-empty list of distinct labels")

        self._problem_type = "graph_coloring"
        self._problem_size = num_nodes
        self._complexity_class = "NP-hard"

        self.num_nodes = num_nodes
        self.colors: Tuple[Any, ...] = tuple(colors)
        self.graph: Optional[nx.Graph] = None

    @classmethod
    def from_edges(
        cls,
        num_nodes: int,
        edges: Iterable[Tuple[int, int]],
        colors: Sequence[Any] = ("red", "green", "blue"),
    ) -> "GraphColoringProblem":
        problem = cls(num_nodes, colors)
        graph = nx.Graph()
        graph.add_nodes_from(range(num_nodes))
        for u, v in edges:
            if u == v or not (0 <= u < num_nodes and 0 <= v < num_nodes):
                raise ValueError(f"Invalid edge ({u}, {v}) for {num_nodes} nodes")
            graph.add_edge(u, v, weight=1.0)
        problem.graph = graph
        problem._generated = True
        return problem

    def generate(self, seed: Optional[int] = None, edge_probability: float = 0.4, **kwargs) -> None:
        """
        Generate an Erdős-Rényi conflict graph with unit weights.

        Raises:
            ValueError: If edge_probability is outside (0, 1)
        """
        if not (0.0 < edge_probability < 1.0):
            raise ValueError("edge_probability must be in (0, 1)")

        graph = nx.erdos_renyi_graph(self.num_nodes, edge_probability, seed=seed)
        nx.set_edge_attributes(graph, 1.0, "weight")
        self.graph = graph
        self._generated = True
        logger.info(f"Generated coloring graph: {self.num_nodes} nodes, "
                    f"{graph.number_of_edges()} edges, {len(self.colors)} colors")

    def variables(self) -> List[Variable]:
        return [Variable.categorical(i, f"node{i}", self.colors) for i in range(self.num_nodes)]

    def objective(self) -> List[ObjectiveTerm]:
        self._require_generated()
        terms: List[ObjectiveTerm] = []
        for u, v, data in sorted(self.graph.edges(data=True)):
            weight = float(data.get("weight", 1.0))
            for color in self.colors:
                terms.append(ObjectiveTerm(weight, ((f"node{u}", color), (f"node{v}", color))))
        return terms

    def calculate_cost(self, solution: Dict[str, Any]) -> float:
        """
        Total weight of monochromatic edges.

        Raises:
            ValueError: If a node is uncolored or uses a color outside the palette
        """
        if not self.validate_solution(solution):
            raise ValueError("Invalid solution")
        return float(sum(
            data.get("weight", 1.0)
            for u, v, data in self.graph.edges(data=True)
            if solution[f"node{u}"] == solution[f"node{v}"]
        ))

    def to_graph(self) -> nx.Graph:
        self._require_generated()
        return self.graph

    def conflicts(self, solution: Dict[str, Any]) -> List[Tuple[int, int]]:
        """Edges whose endpoints share a color."""
        return [
            (u, v) for u, v in self.graph.edges()
            if solution[f"node{u}"] == solution[f"node{v}"]
        ]
