"""
Abstract base class for solvers in the QAOA core pipeline.

Standardized Result Format
---------------------------
Solvers expose their outcome as a dictionary in this format (see
``SolveResult.to_dict``):
{
    'solution': Dict[str, Any],  # Decoded variable assignment (None on failure)
    'cost': float,               # QUBO cost of that assignment (lower is better)
    'time_ms': int,              # Wall-clock execution time in milliseconds
    'energy_mj': float,          # Estimated CPU energy consumption in millijoules
    'iterations': int,           # Optimizer iterations across all starts
    'metadata': Dict[str, Any]   # Solver-specific information
}

Energy Measurement
------------------
Energy is estimated from process CPU time reported by ``psutil``:

    Energy (J) ≈ TDP × utilization × efficiency × CPU time (s)

with TDP 65 W, utilization 0.6 and efficiency 0.8. This is an approximation
for comparing runs, not a hardware measurement.

Example Usage
-------------
```python
from qaoa_core.solvers.qaoa_solver import QaoaSolver

with QaoaSolver() as solver:
    result = solver.solve(problem)
print(result.to_dict()["energy_mj"])
```
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
import logging
import os

import psutil


logger = logging.getLogger(__name__)

# CPU power model used by measure_energy_end()
TDP_WATTS = 65.0
UTILIZATION_FACTOR = 0.6
EFFICIENCY = 0.8


class SolverBase(ABC):
    """
    Abstract base class for optimization solvers.

    Attributes:
        solver_type (str): Type of solver ('quantum', 'classical', 'hybrid')
        solver_name (str): Specific solver name (e.g. 'qaoa')

    Thread Safety:
        Solvers are NOT thread-safe. Create separate instances for concurrent
        execution.
    """

    def __init__(self, solver_type: str, solver_name: str):
        """
        Raises:
            ValueError: If either name is empty
        """
        if not solver_type or not isinstance(solver_type, str):
            raise ValueError("solver_type must be a non-empty string")

        if not solver_name or not isinstance(solver_name, str):
            raise ValueError("solver_name must be a non-empty string")

        self.solver_type = solver_type.lower()
        self.solver_name = solver_name.lower()

        self._energy_start: Optional[float] = None
        self._process: psutil.Process = psutil.Process(os.getpid())

        logger.info(f"Initialized {self.solver_type} solver: {self.solver_name}")

    # ========================================================================
    # Abstract Methods
    # ========================================================================

    @abstractmethod
    def solve(self, problem: Any, **kwargs) -> Any:
        """Solve a problem and return the solver's result object."""
        pass

    @abstractmethod
    def get_solver_info(self) -> Dict[str, Any]:
        """
        Describe solver capabilities and configuration.

        Returns:
            Dictionary with at least 'solver_type', 'solver_name',
            'supported_problems' and 'parameters'
        """
        pass

    # ========================================================================
    # Energy Measurement
    # ========================================================================

    def measure_energy_start(self) -> None:
        """Record process CPU time at the start of a solve."""
        try:
            cpu_times = self._process.cpu_times()
            self._energy_start = cpu_times.user + cpu_times.system
            logger.debug(f"Energy measurement started: CPU time = {self._energy_start:.4f}s")
        except psutil.Error as e:
            logger.warning(f"Failed to start energy measurement: {e}")
            self._energy_start = None

    def measure_energy_end(self) -> float:
        """
        Estimated energy since ``measure_energy_start`` in millijoules.

        Returns 0.0 if measurement was not started or failed.
        """
        if self._energy_start is None:
            logger.warning("Energy measurement not started, returning 0.0")
            return 0.0

        try:
            cpu_times = self._process.cpu_times()
            cpu_time_seconds = (cpu_times.user + cpu_times.system) - self._energy_start
        except psutil.Error as e:
            logger.warning(f"Failed to measure energy: {e}")
            self._energy_start = None
            return 0.0

        average_power = TDP_WATTS * UTILIZATION_FACTOR * EFFICIENCY
        energy_mj = average_power * cpu_time_seconds * 1000.0

        logger.debug(f"Energy measurement ended: {energy_mj:.2f} mJ "
                     f"(CPU time: {cpu_time_seconds:.4f}s)")
        self._energy_start = None
        return energy_mj

    # ========================================================================
    # Context Manager Support
    # ========================================================================

    def __enter__(self):
        logger.debug(f"Entering context for {self.solver_name} solver")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        logger.debug(f"Exiting context for {self.solver_name} solver")
        self._cleanup()
        if exc_type is not None:
            logger.error(f"Exception in solver context: {exc_type.__name__}: {exc_val}")
        return False

    def _cleanup(self) -> None:
        """Release solver resources; subclasses override as needed."""
        self._energy_start = None

    def __repr__(self) -> str:
        return (f"{self.__class__.__name__}("
                f"solver_type='{self.solver_type}', "
                f"solver_name='{self.solver_name}')")

    def __str__(self) -> str:
        return f"{self.solver_type.title()} Solver: {self.solver_name}"
