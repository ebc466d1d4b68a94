"""
QAOA Solver: end-to-end pipeline from a problem to ranked solutions.

Pipeline
--------
    problem ──encode──▶ QUBO ──▶ H_C, H_M ──optimize──▶ (γ*, β*)
        ──build circuit──▶ backend.execute(final_shots) ──decode──▶ RankedSolutions

1. The problem (a ``ProblemBase`` or a prebuilt ``QuboEncoding``) is encoded
   into a penalty-form QUBO.
2. The QUBO is mapped to the Ising cost Hamiltonian; the mixer is the
   transverse field on every qubit.
3. ``ParameterOptimizer`` searches the angles with sampled energies.
4. The best angles are run once more with ``final_shots`` shots.
5. ``SolutionDecoder`` ranks every observed bitstring by classical cost and
   decodes it back to domain values.

Result Contract
---------------
``solve`` never raises for pipeline failures. Every ``QaoaCoreError`` becomes
``SolveResult(status="error")`` carrying the typed exception and the
optimization trace collected before the failure. The execution method of the
backend is always reported separately, and no classical fallback is ever
substituted for a failed quantum run.

Example Usage
-------------
```python
from qaoa_core.config import OptimizerConfig
from qaoa_core.problems.maxcut import MaxCutProblem
from qaoa_core.solvers.qaoa_solver import QaoaSolver

problem = MaxCutProblem.from_edges(4, [(0, 1), (1, 2), (2, 3), (3, 0)])
solver = QaoaSolver(optimizer_config=OptimizerConfig(layers=2, seed=11))
result = solver.solve(problem)

if result.is_success:
    print(result.best_solution.values)     # {'x0': 1, 'x1': 0, 'x2': 1, 'x3': 0}
    print(result.to_dict()["cost"])
else:
    print(result.error.category, result.error)
```
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Union
import logging
import time

import numpy as np

from qaoa_core.backends.backend_base import ExecutionMethod, ExecutionResult, QuantumBackend
from qaoa_core.backends.statevector_simulator import StateVectorSimulator
from qaoa_core.circuits.hamiltonian import build_mixer_hamiltonian, build_problem_hamiltonian
from qaoa_core.circuits.qaoa_circuit import Circuit, build_qaoa_circuit
from qaoa_core.config import OptimizerConfig, QuboConfig, SimulatorConfig
from qaoa_core.errors import BackendExecutionError, QaoaCoreError
from qaoa_core.problems.problem_base import ProblemBase
from qaoa_core.problems.qubo_encoder import QuboEncoding
from qaoa_core.solvers.parameter_optimizer import OptimizationTrace, ParameterOptimizer
from qaoa_core.solvers.solution_decoder import RankedSolutions, SolutionCandidate, SolutionDecoder
from qaoa_core.solvers.solver_base import SolverBase


logger = logging.getLogger(__name__)

ProblemInput = Union[ProblemBase, QuboEncoding]

STATUS_SUCCESS = "success"
STATUS_ERROR = "error"

# Candidates reported in to_dict() metadata
_TOP_CANDIDATES = 5


# ============================================================================
# Result Type
# ============================================================================

@dataclass
class SolveResult:
    """
    Outcome of one ``QaoaSolver.solve`` call.

    Exactly one of ``solutions`` (status ``"success"``) and ``error`` (status
    ``"error"``) is set. ``trace`` is the full optimization trace on success
    and whatever was collected before the failure otherwise (``None`` if the
    pipeline failed before optimization started).

    Attributes:
        status: ``"success"`` or ``"error"``
        execution_method: How the backend produced its results
        backend_name: Backend that executed the circuits
        solutions: Ranked, decoded candidates from the final sampling run
        error: Typed pipeline error
        trace: Optimization trace (full or partial)
        encoding: QUBO encoding of the problem, when encoding succeeded
        final_result: Histogram of the final sampling run
        problem_cost: Domain cost of the best valid solution, for ``ProblemBase`` inputs
        problem_type: Problem label used in logs and metadata
        time_ms: Wall-clock time of the whole solve
        energy_mj: Estimated CPU energy of the whole solve
    """

    status: str
    execution_method: ExecutionMethod
    backend_name: str
    solutions: Optional[RankedSolutions] = None
    error: Optional[QaoaCoreError] = None
    trace: Optional[OptimizationTrace] = None
    encoding: Optional[QuboEncoding] = None
    final_result: Optional[ExecutionResult] = None
    problem_cost: Optional[float] = None
    problem_type: str = "qubo"
    time_ms: float = 0.0
    energy_mj: float = 0.0

    @property
    def is_success(self) -> bool:
        return self.status == STATUS_SUCCESS

    @property
    def best_solution(self) -> Optional[SolutionCandidate]:
        """Best valid candidate, or ``None`` on error or if none was observed."""
        if self.solutions is None:
            return None
        return self.solutions.best_valid

    def to_dict(self) -> Dict[str, Any]:
        """
        Standardized solver result dictionary.

        ``solution`` and ``cost`` describe the best valid candidate and are
        ``None`` when the solve failed or sampled no valid solution.
        """
        best = self.best_solution
        if best is None:
            solution, cost = None, None
        elif self.problem_cost is not None:
            solution, cost = best.values, self.problem_cost
        else:
            solution, cost = best.values, best.energy

        metadata: Dict[str, Any] = {
            "status": self.status,
            "problem_type": self.problem_type,
            "backend": self.backend_name,
            "execution_method": self.execution_method.value,
        }
        if self.encoding is not None:
            metadata["num_qubits"] = self.encoding.num_qubits
            metadata["num_slack_qubits"] = self.encoding.num_slack_qubits
            metadata["penalty_weights"] = dict(self.encoding.penalty_weights)
        if self.trace is not None:
            metadata.update(self.trace.summary())
        if self.solutions is not None:
            metadata["qubo_cost"] = best.energy if best is not None else None
            metadata["valid_fraction"] = self.solutions.valid_fraction
            metadata["final_shots"] = self.solutions.total_shots
            metadata["top_solutions"] = [
                {
                    "bitstring": c.bitstring,
                    "energy": c.energy,
                    "count": c.count,
                    "valid": c.valid,
                }
                for c in self.solutions.top(_TOP_CANDIDATES)
            ]
        if self.error is not None:
            metadata["error_category"] = self.error.category
            metadata["error_message"] = str(self.error)

        return {
            "solution": solution,
            "cost": cost,
            "time_ms": int(round(self.time_ms)),
            "energy_mj": self.energy_mj,
            "iterations": self.trace.iterations if self.trace is not None else 0,
            "metadata": metadata,
        }


# ============================================================================
# Solver
# ============================================================================

class QaoaSolver(SolverBase):
    """
    QAOA solver running the full encode / optimize / sample / decode pipeline.

    Attributes:
        backend: Circuit execution backend (native state-vector simulator by default)
        qubo_config: Penalty configuration for encoding
        optimizer_config: QAOA depth, shot budgets and search settings
    """

    SUPPORTED_PROBLEMS = ["maxcut", "portfolio", "graph_coloring", "qubo"]

    def __init__(
        self,
        backend: Optional[QuantumBackend] = None,
        qubo_config: Optional[QuboConfig] = None,
        optimizer_config: Optional[OptimizerConfig] = None,
        simulator_config: Optional[SimulatorConfig] = None,
    ):
        super().__init__(solver_type="quantum", solver_name="qaoa")
        self.backend = backend or StateVectorSimulator(simulator_config)
        self.qubo_config = qubo_config or QuboConfig()
        self.optimizer_config = optimizer_config or OptimizerConfig()
        self._optimizer = ParameterOptimizer(self.optimizer_config)
        self._decoder = SolutionDecoder()

    def solve(
        self,
        problem: ProblemInput,
        layers: Optional[int] = None,
        initial: Optional[Sequence[float]] = None,
        **kwargs,
    ) -> SolveResult:
        """
        Run the QAOA pipeline on a problem.

        Args:
            problem: Generated ``ProblemBase`` instance or a prebuilt ``QuboEncoding``
            layers: QAOA depth (defaults to ``optimizer_config.layers``)
            initial: Explicit start angles for the first optimizer run

        Returns:
            SolveResult with status ``"success"`` or ``"error"``

        Raises:
            ValueError: If a ``ProblemBase`` has not been generated
        """
        problem_type = problem.problem_type if isinstance(problem, ProblemBase) else "qubo"
        capabilities = self.backend.capabilities

        self.measure_energy_start()
        start_time = time.perf_counter()

        encoding: Optional[QuboEncoding] = None
        trace: Optional[OptimizationTrace] = None
        final_result: Optional[ExecutionResult] = None

        try:
            encoding = problem if isinstance(problem, QuboEncoding) else problem.encode(self.qubo_config)
            problem_hamiltonian = build_problem_hamiltonian(encoding.qubo)
            mixer_hamiltonian = build_mixer_hamiltonian(encoding.num_qubits)

            logger.info(
                f"Solving {problem_type} with QAOA on backend '{capabilities.name}': "
                f"{encoding.num_qubits} qubits, {len(problem_hamiltonian.terms)} Hamiltonian terms"
            )

            trace = self._optimizer.optimize(
                problem_hamiltonian,
                mixer_hamiltonian,
                layers=layers,
                backend=self.backend,
                initial=initial,
            )

            circuit = build_qaoa_circuit(problem_hamiltonian, mixer_hamiltonian, trace.best_parameters)
            final_result = self._final_execution(circuit, trace)
            solutions = self._decoder.decode(final_result, encoding)

        except QaoaCoreError as e:
            if e.partial_trace is not None:
                trace = e.partial_trace
            elapsed_ms = (time.perf_counter() - start_time) * 1000.0
            logger.error(f"QAOA solve of {problem_type} failed: {e.category}: {e}")
            return SolveResult(
                status=STATUS_ERROR,
                execution_method=capabilities.execution_method,
                backend_name=capabilities.name,
                error=e,
                trace=trace,
                encoding=encoding,
                final_result=final_result,
                problem_type=problem_type,
                time_ms=elapsed_ms,
                energy_mj=self.measure_energy_end(),
            )

        problem_cost = None
        best = solutions.best_valid
        if best is not None and isinstance(problem, ProblemBase):
            problem_cost = float(problem.calculate_cost(best.values))

        elapsed_ms = (time.perf_counter() - start_time) * 1000.0
        result = SolveResult(
            status=STATUS_SUCCESS,
            execution_method=final_result.method,
            backend_name=final_result.backend_name,
            solutions=solutions,
            trace=trace,
            encoding=encoding,
            final_result=final_result,
            problem_cost=problem_cost,
            problem_type=problem_type,
            time_ms=elapsed_ms,
            energy_mj=self.measure_energy_end(),
        )

        if best is None:
            logger.warning(
                f"QAOA solve of {problem_type} finished without a valid solution "
                f"({len(solutions.candidates)} distinct bitstrings sampled)"
            )
        else:
            logger.info(
                f"QAOA solve of {problem_type} finished in {elapsed_ms:.1f} ms: "
                f"best valid cost {best.energy:.6f}, valid fraction {solutions.valid_fraction:.3f}"
            )
        return result

    def _final_execution(self, circuit: Circuit, trace: OptimizationTrace) -> ExecutionResult:
        """Sample the optimized circuit with its own seed derived from the optimizer's root seed."""
        seed_sequence = np.random.SeedSequence(
            trace.seed_entropy, spawn_key=(len(trace.runs),)
        )
        seed = int(seed_sequence.generate_state(1, dtype=np.uint32)[0])
        try:
            return self.backend.execute(circuit, self.optimizer_config.final_shots, seed=seed)
        except QaoaCoreError as e:
            e.partial_trace = trace
            raise
        except Exception as e:
            raise BackendExecutionError(
                f"Backend '{self.backend.name}' failed during final sampling: {e}",
                partial_trace=trace,
            ) from e

    def get_solver_info(self) -> Dict[str, Any]:
        capabilities = self.backend.capabilities
        return {
            "solver_type": self.solver_type,
            "solver_name": self.solver_name,
            "description": "Quantum Approximate Optimization Algorithm with Nelder-Mead angle search",
            "supported_problems": list(self.SUPPORTED_PROBLEMS),
            "parameters": {
                "qubo": self.qubo_config.model_dump(),
                "optimizer": self.optimizer_config.model_dump(),
            },
            "backend": {
                "name": capabilities.name,
                "max_qubits": capabilities.max_qubits,
                "supported_gates": sorted(g.value for g in capabilities.supported_gates),
                "all_to_all": capabilities.is_all_to_all,
                "execution_method": capabilities.execution_method.value,
            },
        }


def solve(
    problem: ProblemInput,
    qubo_config: Optional[QuboConfig] = None,
    optimizer_config: Optional[OptimizerConfig] = None,
    backend: Optional[QuantumBackend] = None,
) -> SolveResult:
    """Solve ``problem`` with a one-off ``QaoaSolver``."""
    with QaoaSolver(backend=backend, qubo_config=qubo_config,
                    optimizer_config=optimizer_config) as solver:
        return solver.solve(problem)
