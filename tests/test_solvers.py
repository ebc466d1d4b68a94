"""
Unit tests for solvers module: SolverBase and the end-to-end QAOA solver.
"""

from unittest.mock import Mock

import networkx as nx
import pytest

from qaoa_core.backends.backend_base import BackendCapabilities, ExecutionMethod
from qaoa_core.backends.statevector_simulator import StateVectorSimulator
from qaoa_core.config import OptimizerConfig, SimulatorConfig
from qaoa_core.errors import BackendExecutionError, CapacityExceeded, EncodingError
from qaoa_core.problems.maxcut import MaxCutProblem
from qaoa_core.problems.problem_base import ProblemBase
from qaoa_core.problems.qubo_encoder import Constraint, ObjectiveTerm, QuboEncoder, Variable
from qaoa_core.solvers.qaoa_solver import QaoaSolver, SolveResult, solve
from qaoa_core.solvers.solver_base import SolverBase


class InfeasibleProblem(ProblemBase):
    """Two binaries that must sum to three."""

    def __init__(self):
        super().__init__()
        self._problem_type = "infeasible"
        self._problem_size = 2
        self._generated = True

    def generate(self, seed=None, **kwargs):
        pass

    def variables(self):
        return [Variable.binary(0, "a"), Variable.binary(1, "b")]

    def objective(self):
        return [ObjectiveTerm(1.0, ("a",))]

    def constraints(self):
        return [Constraint.of([(1.0, "a"), (1.0, "b")], "==", 3, name="impossible")]

    def calculate_cost(self, solution):
        return float(solution["a"])

    def to_graph(self):
        return nx.Graph()


@pytest.fixture
def small_config():
    return OptimizerConfig(
        layers=1,
        optimization_shots=500,
        final_shots=2000,
        max_iterations=60,
        num_starts=2,
        seed=5,
    )


@pytest.fixture
def square():
    return MaxCutProblem.from_edges(4, [(0, 1), (1, 2), (2, 3), (3, 0)])


def failing_backend(fail_after):
    simulator = StateVectorSimulator()
    calls = {"count": 0}

    def execute(circuit, shots, seed=None):
        calls["count"] += 1
        if calls["count"] > fail_after:
            raise RuntimeError("lost connection to device")
        return simulator.execute(circuit, shots, seed=seed)

    backend = Mock()
    backend.name = "remote"
    backend.capabilities = BackendCapabilities(name="remote", max_qubits=8)
    backend.execute.side_effect = execute
    return backend


class TestSolverBase:
    """Test SolverBase functionality through QaoaSolver."""

    def test_solver_base_initialization_success(self):
        """Test successful solver base initialization."""
        solver = QaoaSolver()

        assert isinstance(solver, SolverBase)
        assert solver.solver_type == "quantum"
        assert solver.solver_name == "qaoa"
        assert str(solver) == "Quantum Solver: qaoa"
        assert "QaoaSolver" in repr(solver)

    def test_solver_base_initialization_failure(self):
        """Test empty solver names are rejected."""

        class NamelessSolver(SolverBase):
            def solve(self, problem, **kwargs):
                return None

            def get_solver_info(self):
                return {}

        with pytest.raises(ValueError, match="solver_name"):
            NamelessSolver(solver_type="quantum", solver_name="")

    def test_energy_measurement(self):
        """Test energy is non-negative after a measurement and zero without one."""
        solver = QaoaSolver()

        assert solver.measure_energy_end() == 0.0

        solver.measure_energy_start()
        _ = sum(range(100000))
        energy_mj = solver.measure_energy_end()
        assert isinstance(energy_mj, float)
        assert energy_mj >= 0.0

    def test_context_manager(self):
        """Test solvers work as context managers and clean up."""
        with QaoaSolver() as solver:
            solver.measure_energy_start()
        assert solver._energy_start is None

    def test_get_solver_info(self, small_config):
        """Test solver info lists problems, parameters and backend capabilities."""
        info = QaoaSolver(optimizer_config=small_config).get_solver_info()

        assert info["solver_type"] == "quantum"
        assert "maxcut" in info["supported_problems"]
        assert info["parameters"]["optimizer"]["layers"] == 1
        assert info["backend"]["name"] == "statevector"
        assert info["backend"]["execution_method"] == "statevector_simulation"
        assert "CCX" in info["backend"]["supported_gates"]


class TestQaoaSolver:
    """Test the end-to-end pipeline."""

    def test_maxcut_success(self, square, small_config):
        """Test the square graph is solved to its maximum cut."""
        result = QaoaSolver(optimizer_config=small_config).solve(square)

        assert isinstance(result, SolveResult)
        assert result.is_success
        assert result.error is None
        assert result.execution_method is ExecutionMethod.STATEVECTOR_SIMULATION
        assert result.best_solution is not None
        assert result.best_solution.energy == pytest.approx(-4.0)
        assert result.problem_cost == pytest.approx(-4.0)
        assert sum(result.final_result.counts.values()) == small_config.final_shots

    def test_result_dictionary(self, square, small_config):
        """Test the standardized result dictionary."""
        result = QaoaSolver(optimizer_config=small_config).solve(square)
        data = result.to_dict()

        assert set(data) == {"solution", "cost", "time_ms", "energy_mj", "iterations", "metadata"}
        assert data["cost"] == pytest.approx(-4.0)
        assert set(data["solution"]) == {"x0", "x1", "x2", "x3"}
        assert data["iterations"] == result.trace.iterations
        assert data["energy_mj"] >= 0.0

        metadata = data["metadata"]
        assert metadata["status"] == "success"
        assert metadata["problem_type"] == "maxcut"
        assert metadata["execution_method"] == "statevector_simulation"
        assert metadata["num_qubits"] == 4
        assert metadata["layers"] == 1
        assert len(metadata["top_solutions"]) <= 5
        assert 0.0 <= metadata["valid_fraction"] <= 1.0

    def test_one_hot_encoding_scenario(self):
        """Test deep QAOA on a lone one-hot group puts almost every shot on a valid assignment."""
        encoding = QuboEncoder().encode([Variable.categorical(0, "color", ["red", "green", "blue"])])
        config = OptimizerConfig(
            layers=3,
            optimization_shots=2000,
            final_shots=4000,
            max_iterations=200,
            tolerance=1e-3,
            num_starts=2,
            seed=5,
        )

        result = QaoaSolver(optimizer_config=config).solve(encoding)

        assert result.is_success
        assert result.problem_type == "qubo"
        # Uniform superposition has mean penalty energy 1; every invalid state costs at least 1
        assert result.trace.best_energy < 0.25
        assert result.solutions.valid_fraction >= 0.9
        assert result.best_solution.energy == 0.0
        assert result.best_solution.valid
        for candidate in result.solutions.candidates:
            if candidate.energy == 0.0:
                assert candidate.valid

    def test_seeded_solve_is_reproducible(self, square, small_config):
        """Test a fixed seed reproduces the final histogram."""
        first = QaoaSolver(optimizer_config=small_config).solve(square)
        second = QaoaSolver(optimizer_config=small_config).solve(square)

        assert first.final_result.counts == second.final_result.counts
        assert first.to_dict()["solution"] == second.to_dict()["solution"]

    def test_backend_failure_returns_error_result(self, square, small_config):
        """Test a backend failure becomes an error result with the partial trace."""
        backend = failing_backend(fail_after=2)

        result = QaoaSolver(backend=backend, optimizer_config=small_config).solve(square)

        assert result.status == "error"
        assert not result.is_success
        assert isinstance(result.error, BackendExecutionError)
        assert isinstance(result.error.__cause__, RuntimeError)
        assert result.solutions is None
        assert result.trace is not None
        assert result.trace.num_evaluations == 2
        assert result.execution_method is ExecutionMethod.STATEVECTOR_SIMULATION

        data = result.to_dict()
        assert data["solution"] is None
        assert data["cost"] is None
        assert data["metadata"]["error_category"] == "BackendExecutionError"
        assert "lost connection" in data["metadata"]["error_message"]

    def test_final_sampling_failure_keeps_full_trace(self, square, small_config):
        """Test a failure after optimization still reports the complete trace."""
        counting = failing_backend(fail_after=10 ** 6)
        QaoaSolver(backend=counting, optimizer_config=small_config).solve(square)
        optimization_calls = counting.execute.call_count - 1

        backend = failing_backend(fail_after=optimization_calls)
        result = QaoaSolver(backend=backend, optimizer_config=small_config).solve(square)

        assert isinstance(result.error, BackendExecutionError)
        assert "final sampling" in str(result.error)
        assert result.trace.num_evaluations == optimization_calls
        assert result.trace.best_parameters is not None

    def test_capacity_failure(self, square, small_config):
        """Test an oversized problem yields a typed error, never a classical fallback."""
        solver = QaoaSolver(
            optimizer_config=small_config,
            simulator_config=SimulatorConfig(max_qubits=3),
        )
        result = solver.solve(square)

        assert result.status == "error"
        assert isinstance(result.error, CapacityExceeded)
        assert result.trace.num_evaluations == 0
        assert result.execution_method is not ExecutionMethod.CLASSICAL_FALLBACK

    def test_encoding_failure(self, small_config):
        """Test an infeasible problem fails at encoding without a trace."""
        result = QaoaSolver(optimizer_config=small_config).solve(InfeasibleProblem())

        assert result.status == "error"
        assert isinstance(result.error, EncodingError)
        assert result.trace is None
        assert result.encoding is None
        assert result.to_dict()["metadata"]["problem_type"] == "infeasible"

    def test_ungenerated_problem_failure(self, small_config):
        """Test solving an ungenerated problem is a caller error."""
        with pytest.raises(ValueError, match="not generated"):
            QaoaSolver(optimizer_config=small_config).solve(MaxCutProblem(num_nodes=4))

    def test_module_level_solve(self, square, small_config):
        """Test the one-shot solve helper."""
        result = solve(square, optimizer_config=small_config, backend=StateVectorSimulator())

        assert result.is_success
        assert result.backend_name == "statevector"
        assert result.problem_cost == pytest.approx(-4.0)
