"""
Classical parameter optimizer for QAOA.

Finds angles (γ_1, β_1, ..., γ_p, β_p) minimizing the sampled energy of the
QAOA state. Every objective evaluation is a full quantum round trip:

    params → build circuit → backend.execute(shots) → sample-mean QUBO cost

Search Strategy
---------------
The objective is a noisy, shot-sampled estimate, so a derivative-free method
is used: Nelder-Mead (``scipy.optimize.minimize``) on a simplex of 2p + 1
vertices, the start point plus one vertex offset by ``simplex_step`` along
each parameter axis. A run stops when the energy spread across the simplex
drops to the convergence tolerance (converged) or after ``max_iterations``
simplex updates (budget exhausted). The two outcomes are reported separately.

A sampled energy carries shot noise of at most Σ|c_k| / √shots, where c_k are
the Pauli coefficients of H_C. Unless ``tolerance`` fixes an absolute value,
the tolerance is that bound scaled by ``noise_tolerance_factor``, so it never
sits below what the estimate can resolve.

With ``mode="layer_by_layer"`` each run grows the circuit one layer at a
time, searching only the newest (γ, β) pair while earlier layers stay fixed.
``parameter_bounds`` confines every γ and β to a box; start points are clipped
into it.

Initialization Strategies
-------------------------
    linear_ramp     γ_i = (i + ½)/p · Δ,   β_i = (1 − (i + ½)/p) · Δ
    random_uniform  γ_i ~ U[0, π),          β_i ~ U[0, π/2)
    two_local       γ_i = ½π · (i+1)/p,     β_i = 0.15π · (i+1)/p
    standard_qaoa   γ_i ~ U[0, π/2),        β_i ~ U[0, π/4)

``num_starts`` independent runs cycle through the configured strategies; a
deterministic strategy that comes round again is jittered so repeated starts
differ. The lowest-energy run wins.

Randomness and Concurrency
--------------------------
All randomness derives from one ``numpy.random.SeedSequence(config.seed)``.
Each run gets a spawned child generator that supplies its random start point
and the seed of every backend execution, so a seeded optimization is exactly
reproducible whether runs execute sequentially or on a thread pool
(``max_workers > 1``). Runs share no mutable state and results are merged
only after all of them have finished.

Failure Policy
--------------
An evaluation that fails aborts the search. Typed core errors propagate
unchanged and any other backend exception is wrapped in
``BackendExecutionError``. Either way the error carries the trace collected
so far as ``partial_trace``. No placeholder energy is ever substituted for a
failed evaluation.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence
import logging
import time

import numpy as np
from scipy.optimize import minimize

from qaoa_core.backends.backend_base import QuantumBackend
from qaoa_core.circuits.hamiltonian import MixerHamiltonian, ProblemHamiltonian
from qaoa_core.circuits.qaoa_circuit import build_qaoa_circuit
from qaoa_core.config import OptimizerConfig
from qaoa_core.errors import BackendExecutionError, InvalidArgument, QaoaCoreError


logger = logging.getLogger(__name__)


# Strategies that already draw a fresh start from the run's generator.
_RANDOM_STRATEGIES = frozenset({"random_uniform", "standard_qaoa"})


# ============================================================================
# Trace Types
# ============================================================================

@dataclass(frozen=True)
class Evaluation:
    """One objective evaluation: angles, sampled energy and the execution seed."""

    parameters: np.ndarray
    energy: float
    seed: Optional[int] = None


@dataclass
class RunTrace:
    """
    History of a single Nelder-Mead run.

    Attributes:
        start_index: Position of this run among the starts
        strategy: Initialization strategy name
        initial_parameters: Start point of the simplex
        evaluations: Every objective evaluation in call order
        best_per_iteration: Best energy seen so far after each iteration
        converged: True only if the simplex spread reached the tolerance
        iterations: Nelder-Mead iterations performed
        message: Termination message from scipy
    """

    start_index: int
    strategy: str
    initial_parameters: np.ndarray
    evaluations: List[Evaluation] = field(default_factory=list)
    best_per_iteration: List[float] = field(default_factory=list)
    converged: bool = False
    iterations: int = 0
    message: str = ""

    @property
    def best_evaluation(self) -> Optional[Evaluation]:
        if not self.evaluations:
            return None
        return min(self.evaluations, key=lambda e: e.energy)

    @property
    def best_energy(self) -> float:
        best = self.best_evaluation
        return best.energy if best is not None else float("inf")


@dataclass
class OptimizationTrace:
    """
    Combined result of all optimizer runs.

    Attributes:
        layers: QAOA depth p
        runs: Per-start traces, in start order
        best_parameters: Flat ``[γ1, β1, ...]`` vector of the best evaluation
        best_energy: Lowest sampled energy observed
        converged: Whether the winning run converged (vs. exhausting its budget)
        seed_entropy: Entropy of the root SeedSequence (replays an unseeded run)
        time_ms: Wall-clock optimization time
    """

    layers: int
    runs: List[RunTrace] = field(default_factory=list)
    best_parameters: Optional[np.ndarray] = None
    best_energy: float = float("inf")
    converged: bool = False
    seed_entropy: Optional[int] = None
    time_ms: float = 0.0

    @property
    def num_evaluations(self) -> int:
        return sum(len(run.evaluations) for run in self.runs)

    @property
    def evaluations(self) -> List[Evaluation]:
        """All evaluations, run by run, in call order."""
        return [e for run in self.runs for e in run.evaluations]

    @property
    def iterations(self) -> int:
        return sum(run.iterations for run in self.runs)

    @property
    def best_run(self) -> Optional[RunTrace]:
        candidates = [run for run in self.runs if run.evaluations]
        if not candidates:
            return None
        return min(candidates, key=lambda run: run.best_energy)

    def summary(self) -> Dict[str, object]:
        return {
            "layers": self.layers,
            "best_energy": self.best_energy,
            "best_parameters": None if self.best_parameters is None else self.best_parameters.tolist(),
            "converged": self.converged,
            "num_evaluations": self.num_evaluations,
            "iterations": self.iterations,
            "num_runs": len(self.runs),
            "strategies": [run.strategy for run in self.runs],
        }


# ============================================================================
# Energy Estimation
# ============================================================================

def sample_mean_energy(problem_hamiltonian: ProblemHamiltonian, counts: Mapping[str, int]) -> float:
    """
    Count-weighted mean classical energy of a measurement histogram.

    Raises:
        InvalidArgument: If the histogram is empty
    """
    shots = sum(counts.values())
    if shots <= 0:
        raise InvalidArgument("Cannot estimate energy from an empty histogram")
    total = 0.0
    for bits, count in counts.items():
        total += count * problem_hamiltonian.energy(bits)
    return total / shots


def convergence_tolerance(problem_hamiltonian: ProblemHamiltonian, shots: int,
                          config: OptimizerConfig) -> float:
    """
    Simplex energy spread at which a run counts as converged.

    An explicit ``config.tolerance`` wins. Otherwise the shot-noise bound
    Σ|c_k| / √shots is scaled by ``config.noise_tolerance_factor``.
    """
    if config.tolerance is not None:
        return config.tolerance
    spread = sum(abs(term.coefficient) for term in problem_hamiltonian.terms) or 1.0
    return config.noise_tolerance_factor * spread / np.sqrt(shots)


def initial_parameters(strategy: str, layers: int, rng: np.random.Generator,
                       ramp_delta: float = 0.75) -> np.ndarray:
    """
    Start point for one run in the flat ``[γ1, β1, ...]`` layout.

    Raises:
        InvalidArgument: If the strategy name is unknown
    """
    params = np.zeros(2 * layers)
    for i in range(layers):
        if strategy == "linear_ramp":
            fraction = (i + 0.5) / layers
            params[2 * i] = fraction * ramp_delta
            params[2 * i + 1] = (1.0 - fraction) * ramp_delta
        elif strategy == "random_uniform":
            params[2 * i] = rng.uniform(0.0, np.pi)
            params[2 * i + 1] = rng.uniform(0.0, np.pi / 2)
        elif strategy == "two_local":
            fraction = (i + 1) / layers
            params[2 * i] = 0.5 * np.pi * fraction
            params[2 * i + 1] = 0.15 * np.pi * fraction
        elif strategy == "standard_qaoa":
            params[2 * i] = rng.uniform(0.0, np.pi / 2)
            params[2 * i + 1] = rng.uniform(0.0, np.pi / 4)
        else:
            raise InvalidArgument(f"Unknown initialization strategy '{strategy}'")
    return params


# ============================================================================
# Optimizer
# ============================================================================

class ParameterOptimizer:
    """
    Multi-start Nelder-Mead optimizer over QAOA angles, all layers at once or layer by layer.

    Example:
        >>> optimizer = ParameterOptimizer(OptimizerConfig(layers=1, seed=7))
        >>> trace = optimizer.optimize(h_c, h_m, layers=1, backend=StateVectorSimulator())
        >>> trace.best_energy, trace.converged, trace.num_evaluations
    """

    def __init__(self, config: Optional[OptimizerConfig] = None):
        self.config = config or OptimizerConfig()

    def optimize(
        self,
        problem_hamiltonian: ProblemHamiltonian,
        mixer_hamiltonian: MixerHamiltonian,
        layers: Optional[int] = None,
        backend: Optional[QuantumBackend] = None,
        initial: Optional[Sequence[float]] = None,
    ) -> OptimizationTrace:
        """
        Optimize QAOA angles against sampled energies.

        Args:
            problem_hamiltonian: Cost Hamiltonian H_C
            mixer_hamiltonian: Mixer Hamiltonian H_M
            layers: QAOA depth p (defaults to ``config.layers``)
            backend: Execution backend (required)
            initial: Explicit start point for the first run (flat ``[γ1, β1, ...]``)

        Returns:
            OptimizationTrace with the best parameters and full history

        Raises:
            InvalidArgument: If layers < 1, no backend is given or ``initial`` has the wrong length
            QaoaCoreError: Any evaluation failure, with ``partial_trace`` attached
        """
        layers = layers if layers is not None else self.config.layers
        if layers < 1:
            raise InvalidArgument(f"layers must be >= 1, got {layers}")
        if backend is None:
            raise InvalidArgument("A backend is required to evaluate QAOA energies")
        if initial is not None and len(initial) != 2 * layers:
            raise InvalidArgument(
                f"initial has {len(initial)} values, expected {2 * layers} for p={layers}"
            )

        start_time = time.perf_counter()
        root = np.random.SeedSequence(self.config.seed)
        children = root.spawn(self.config.num_starts)
        strategies = self.config.initialization_strategies

        runs: List[RunTrace] = []
        generators: List[np.random.Generator] = []
        for index, child in enumerate(children):
            rng = np.random.default_rng(child)
            strategy = strategies[index % len(strategies)]
            if index == 0 and initial is not None:
                strategy, start = "explicit", np.asarray(initial, dtype=float)
            else:
                start = initial_parameters(strategy, layers, rng, self.config.ramp_delta)
                if index >= len(strategies) and strategy not in _RANDOM_STRATEGIES:
                    start = start + rng.normal(0.0, self.config.simplex_step / 2, size=start.shape)
            runs.append(RunTrace(start_index=index, strategy=strategy, initial_parameters=start))
            generators.append(rng)

        trace = OptimizationTrace(layers=layers, runs=runs, seed_entropy=root.entropy)
        tolerance = convergence_tolerance(problem_hamiltonian, self.config.optimization_shots,
                                          self.config)

        logger.info(
            f"Optimizing p={layers} QAOA on {problem_hamiltonian.num_qubits} qubits: "
            f"{len(runs)} start(s), {self.config.optimization_shots} shots/evaluation, "
            f"max {self.config.max_iterations} iterations, {self.config.mode}, "
            f"tolerance {tolerance:.3g}"
        )

        def run_one(position: int) -> None:
            self._run(runs[position], generators[position], problem_hamiltonian,
                      mixer_hamiltonian, backend, tolerance)

        errors: List[BaseException] = []
        if self.config.max_workers > 1 and len(runs) > 1:
            with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
                futures = [executor.submit(run_one, i) for i in range(len(runs))]
                for future in futures:
                    error = future.exception()
                    if error is not None:
                        errors.append(error)
        else:
            for i in range(len(runs)):
                try:
                    run_one(i)
                except QaoaCoreError as e:
                    errors.append(e)
                    break

        self._finalize(trace)
        trace.time_ms = (time.perf_counter() - start_time) * 1000.0

        if errors:
            error = errors[0]
            if isinstance(error, QaoaCoreError):
                error.partial_trace = trace
                logger.error(
                    f"Optimization aborted after {trace.num_evaluations} evaluations: "
                    f"{error.category}: {error}"
                )
            raise error

        best_run = trace.best_run
        if not trace.converged:
            logger.warning(
                f"Best run ({best_run.strategy}) exhausted its budget of "
                f"{self.config.max_iterations} iterations without converging"
            )
        logger.info(
            f"Optimization finished: best energy {trace.best_energy:.6f} "
            f"({best_run.strategy} start), {trace.num_evaluations} evaluations, "
            f"converged={trace.converged}, {trace.time_ms:.1f} ms"
        )
        return trace

    def _run(
        self,
        run: RunTrace,
        rng: np.random.Generator,
        problem_hamiltonian: ProblemHamiltonian,
        mixer_hamiltonian: MixerHamiltonian,
        backend: QuantumBackend,
        tolerance: float,
    ) -> None:
        """Execute one search, recording into ``run`` as it goes."""
        shots = self.config.optimization_shots

        def evaluate(params: np.ndarray) -> float:
            seed = int(rng.integers(0, 2 ** 32))
            circuit = build_qaoa_circuit(problem_hamiltonian, mixer_hamiltonian, params)
            try:
                result = backend.execute(circuit, shots, seed=seed)
            except QaoaCoreError:
                raise
            except Exception as e:
                raise BackendExecutionError(f"Backend '{backend.name}' failed: {e}") from e

            energy = sample_mean_energy(problem_hamiltonian, result.counts)
            run.evaluations.append(Evaluation(parameters=np.array(params, dtype=float),
                                              energy=energy, seed=seed))
            logger.debug(f"Run {run.start_index} eval {len(run.evaluations)}: energy {energy:.6f}")
            return energy

        def callback(xk: np.ndarray) -> None:
            run.iterations += 1
            run.best_per_iteration.append(run.best_energy)

        lower, upper = self._bounds(len(run.initial_parameters) // 2)
        if lower is not None:
            run.initial_parameters = np.clip(run.initial_parameters, lower, upper)
        start = run.initial_parameters

        try:
            if self.config.mode == "layer_by_layer":
                self._run_layer_by_layer(run, start, evaluate, callback, lower, upper, tolerance)
            else:
                result = self._search(evaluate, start, lower, upper,
                                      self.config.max_iterations, tolerance, callback)
                run.converged = result.status == 0
                run.message = str(result.message)
        except QaoaCoreError as e:
            run.message = f"aborted: {e.category}"
            raise

        logger.debug(
            f"Run {run.start_index} ({run.strategy}) finished: best {run.best_energy:.6f}, "
            f"{run.iterations} iterations, converged={run.converged}"
        )

    def _run_layer_by_layer(self, run, start, evaluate, callback, lower, upper, tolerance) -> None:
        """
        Grow the circuit one layer at a time.

        Stage ``l`` searches only (γ_l, β_l), seeded from the start point, with
        every earlier layer fixed at its best stage result and every later
        layer at zero angles (the identity). The iteration budget is split
        evenly across stages.
        """
        layers = len(start) // 2
        budget = max(1, self.config.max_iterations // layers)
        current = np.zeros_like(start)
        converged = True
        message = ""

        for stage in range(layers):
            window = slice(2 * stage, 2 * stage + 2)
            current[window] = start[window]
            first = len(run.evaluations)

            def objective(x: np.ndarray, window=window) -> float:
                params = current.copy()
                params[window] = x
                return evaluate(params)

            result = self._search(
                objective,
                current[window].copy(),
                None if lower is None else lower[window],
                None if upper is None else upper[window],
                budget,
                tolerance,
                callback,
            )
            stage_best = min(run.evaluations[first:], key=lambda e: e.energy)
            current = stage_best.parameters.copy()
            converged = converged and result.status == 0
            message = str(result.message)
            logger.debug(
                f"Run {run.start_index} layer {stage + 1}/{layers}: best {stage_best.energy:.6f}"
            )

        run.converged = converged
        run.message = message

    def _search(self, objective, x0, lower, upper, max_iterations, tolerance, callback):
        """
        One Nelder-Mead minimization from ``x0``.

        scipy counts the initial simplex as an iteration, so ``maxiter`` is
        one more than the number of simplex updates allowed.
        """
        simplex = self._initial_simplex(x0, lower, upper)
        bounds = None if lower is None else list(zip(lower, upper))
        return minimize(
            objective,
            x0,
            method="Nelder-Mead",
            callback=callback,
            bounds=bounds,
            options={
                "maxiter": max_iterations + 1,
                "initial_simplex": simplex,
                "fatol": tolerance,
                "xatol": np.inf,
                "disp": False,
            },
        )

    def _initial_simplex(self, x0: np.ndarray, lower, upper) -> np.ndarray:
        """Start point plus one vertex per axis, stepping inward at an upper bound."""
        step = self.config.simplex_step
        vertices = [x0]
        for axis in np.eye(len(x0)):
            vertex = x0 + step * axis
            if upper is not None:
                if np.any(vertex > upper):
                    vertex = x0 - step * axis
                vertex = np.clip(vertex, lower, upper)
            vertices.append(vertex)
        return np.vstack(vertices)

    def _bounds(self, layers: int):
        """Per-parameter lower and upper bounds, or ``(None, None)`` when unbounded."""
        if self.config.parameter_bounds is None:
            return None, None
        gamma_min, gamma_max, beta_min, beta_max = self.config.parameter_bounds
        lower = np.tile([gamma_min, beta_min], layers).astype(float)
        upper = np.tile([gamma_max, beta_max], layers).astype(float)
        return lower, upper

    @staticmethod
    def _finalize(trace: OptimizationTrace) -> None:
        best_run = trace.best_run
        if best_run is None:
            return
        best = best_run.best_evaluation
        trace.best_parameters = best.parameters.copy()
        trace.best_energy = best.energy
        trace.converged = best_run.converged
