"""
Configuration Management for the QAOA core pipeline.

This module provides a type-safe, validated configuration system using Pydantic.
Configuration values are loaded from environment variables or a .env file with
defaults suited to local state-vector simulation.

Each pipeline stage owns one settings class:

- ``QuboConfig``: penalty weighting used by the QUBO encoder
- ``SimulatorConfig``: capacity and sampling limits of the state-vector engine
- ``OptimizerConfig``: Nelder-Mead budget, shot counts and multi-start policy
- ``LoggingConfig``: log level and format for ``configure_logging()``

Usage:
    >>> from qaoa_core.config import settings
    >>> print(settings.simulator.max_qubits)
    >>> print(settings.optimizer.num_parameters)
    >>> print(settings.qubo.penalty_margin)
"""

import logging
import math
from typing import List, Optional, Literal, Tuple

from pydantic import Field, field_validator, model_validator, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


InitializationStrategy = Literal["linear_ramp", "random_uniform", "two_local", "standard_qaoa"]

OptimizationMode = Literal["multi_start", "layer_by_layer"]

# Absolute ceiling for the dense simulator; 2^30 complex128 amplitudes is 16 GiB.
HARD_QUBIT_LIMIT = 30


# =============================================================================
# QUBO Encoding Configuration
# =============================================================================

class QuboConfig(BaseSettings):
    """
    Penalty weighting for constraint encoding.

    Every one-hot group and every constraint receives its own penalty weight
    computed as::

        λ = penalty_scale × (objective swing over the touched variables) + penalty_margin

    The objective swing is the sum of absolute objective coefficients touching
    the group, an upper bound on what any single violation could gain. A strictly
    positive margin keeps every violation strictly more expensive than the best
    feasible objective improvement.

    Environment Variables:
        QUBO_PENALTY_MARGIN: Additive margin above the objective swing (default: 1.0)
        QUBO_PENALTY_SCALE: Multiplier applied to the swing (default: 1.0)
        QUBO_PENALTY_WEIGHT: Fixed weight overriding the computed one (default: unset)

    Example:
        >>> config = QuboConfig(penalty_margin=2.0)
        >>> print(config.uses_fixed_weight)  # False
    """

    penalty_margin: float = Field(
        default=1.0,
        gt=0.0,
        description="Additive margin on top of the objective swing"
    )

    penalty_scale: float = Field(
        default=1.0,
        ge=1.0,
        description="Multiplier applied to the objective swing"
    )

    penalty_weight: Optional[float] = Field(
        default=None,
        gt=0.0,
        description="Fixed penalty weight; disables automatic computation when set"
    )

    @computed_field
    @property
    def uses_fixed_weight(self) -> bool:
        """Whether a fixed penalty weight overrides the computed one."""
        return self.penalty_weight is not None

    model_config = SettingsConfigDict(
        env_prefix="QUBO_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


# =============================================================================
# Simulator Configuration
# =============================================================================

class SimulatorConfig(BaseSettings):
    """
    State-vector simulator limits.

    The simulator stores 2^n complex amplitudes, so memory doubles with every
    qubit. ``max_qubits`` is the configured ceiling; requests beyond it are
    rejected before anything is allocated.

    Environment Variables:
        SIMULATOR_MAX_QUBITS: Capacity ceiling (default: 16)
        SIMULATOR_DEFAULT_SHOTS: Shots used when a caller passes none (default: 1024)
        SIMULATOR_MEMORY_HEADROOM: Fraction of available RAM the state may use (default: 0.5)

    Example:
        >>> config = SimulatorConfig(max_qubits=12)
        >>> print(config.state_vector_bytes)  # 65536
    """

    max_qubits: int = Field(
        default=16,
        ge=1,
        le=HARD_QUBIT_LIMIT,
        description="Maximum number of qubits the simulator accepts"
    )

    default_shots: int = Field(
        default=1024,
        ge=1,
        le=10_000_000,
        description="Default number of measurement shots"
    )

    memory_headroom: float = Field(
        default=0.5,
        gt=0.0,
        le=1.0,
        description="Fraction of available memory a simulation may claim"
    )

    @computed_field
    @property
    def state_vector_bytes(self) -> int:
        """Size in bytes of a complex128 state vector at the capacity ceiling."""
        return (2 ** self.max_qubits) * 16

    model_config = SettingsConfigDict(
        env_prefix="SIMULATOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


# =============================================================================
# Optimizer Configuration
# =============================================================================

class OptimizerConfig(BaseSettings):
    """
    Classical parameter optimization settings for QAOA.

    Controls the number of QAOA layers, the Nelder-Mead evaluation budget,
    shot counts for optimization and final sampling, and the multi-start policy.

    Environment Variables:
        OPTIMIZER_LAYERS: QAOA depth p (default: 2)
        OPTIMIZER_OPTIMIZATION_SHOTS: Shots per energy estimate (default: 1000)
        OPTIMIZER_FINAL_SHOTS: Shots for the final histogram (default: 2000)
        OPTIMIZER_MAX_ITERATIONS: Nelder-Mead iteration budget per start (default: 200)
        OPTIMIZER_TOLERANCE: Absolute simplex energy spread that counts as converged
            (default: unset, derived from the shot noise)
        OPTIMIZER_NOISE_TOLERANCE_FACTOR: Multiple of the shot-noise bound used
            when no absolute tolerance is set (default: 1.0)
        OPTIMIZER_NUM_STARTS: Independent Nelder-Mead searches (default: 3)
        OPTIMIZER_MODE: multi_start or layer_by_layer (default: multi_start)
        OPTIMIZER_PARAMETER_BOUNDS: JSON list [γ_min, γ_max, β_min, β_max] (default: unbounded)
        OPTIMIZER_SEED: Master seed for reproducible runs (default: unset)

    Example:
        >>> config = OptimizerConfig(layers=3, seed=7)
        >>> print(config.num_parameters)  # 6
    """

    layers: int = Field(
        default=2,
        ge=1,
        le=20,
        description="Number of QAOA layers (p)"
    )

    optimization_shots: int = Field(
        default=1000,
        ge=1,
        description="Shots per objective evaluation"
    )

    final_shots: int = Field(
        default=2000,
        ge=1,
        description="Shots for the final measurement histogram"
    )

    max_iterations: int = Field(
        default=200,
        ge=1,
        description="Maximum Nelder-Mead iterations per start"
    )

    tolerance: Optional[float] = Field(
        default=None,
        gt=0.0,
        description="Absolute convergence threshold on the simplex energy spread"
    )

    noise_tolerance_factor: float = Field(
        default=1.0,
        gt=0.0,
        description="Convergence threshold as a multiple of the shot-noise bound"
    )

    mode: OptimizationMode = Field(
        default="multi_start",
        description="Optimize all layers at once or one layer at a time"
    )

    parameter_bounds: Optional[Tuple[float, float, float, float]] = Field(
        default=None,
        description="Search box (gamma_min, gamma_max, beta_min, beta_max); None is unbounded"
    )

    simplex_step: float = Field(
        default=0.25,
        gt=0.0,
        description="Offset of the initial simplex vertices from the start point (radians)"
    )

    ramp_delta: float = Field(
        default=0.75,
        gt=0.0,
        description="Ramp amplitude for the linear_ramp initialization"
    )

    num_starts: int = Field(
        default=3,
        ge=1,
        le=64,
        description="Number of independent optimizer starts"
    )

    initialization_strategies: List[InitializationStrategy] = Field(
        default_factory=lambda: ["linear_ramp", "random_uniform", "two_local"],
        description="Start-point strategies, cycled across starts"
    )

    max_workers: int = Field(
        default=1,
        ge=1,
        le=64,
        description="Worker threads for concurrent starts (1 = sequential)"
    )

    seed: Optional[int] = Field(
        default=None,
        ge=0,
        description="Master seed; every start and evaluation derives from it"
    )

    @field_validator("initialization_strategies")
    @classmethod
    def validate_strategies(cls, v: List[str]) -> List[str]:
        """Require at least one initialization strategy."""
        if not v:
            raise ValueError("initialization_strategies must not be empty")
        return v

    @field_validator("parameter_bounds")
    @classmethod
    def validate_bounds(cls, v: Optional[Tuple[float, float, float, float]]):
        """Each bound pair must be finite and ordered."""
        if v is None:
            return v
        gamma_min, gamma_max, beta_min, beta_max = v
        if not all(math.isfinite(b) for b in v):
            raise ValueError("parameter_bounds must be finite")
        if gamma_min >= gamma_max or beta_min >= beta_max:
            raise ValueError(f"parameter_bounds must satisfy min < max, got {v}")
        return v

    @model_validator(mode="after")
    def validate_shot_budget(self) -> "OptimizerConfig":
        """Final sampling must use at least as many shots as optimization."""
        if self.final_shots < self.optimization_shots:
            raise ValueError(
                f"final_shots ({self.final_shots}) must be >= "
                f"optimization_shots ({self.optimization_shots})"
            )
        return self

    @computed_field
    @property
    def num_parameters(self) -> int:
        """Length of the flat parameter vector (2p)."""
        return 2 * self.layers

    @computed_field
    @property
    def is_parallel(self) -> bool:
        """Whether starts run on a thread pool."""
        return self.max_workers > 1 and self.num_starts > 1

    model_config = SettingsConfigDict(
        env_prefix="OPTIMIZER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


# =============================================================================
# Logging Configuration
# =============================================================================

class LoggingConfig(BaseSettings):
    """
    Logging configuration.

    Environment Variables:
        LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
        LOG_FORMAT: Format string passed to logging.basicConfig
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Root log level"
    )

    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log record format"
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


# =============================================================================
# Main Settings Class
# =============================================================================

class Settings(BaseSettings):
    """
    Aggregate settings for the QAOA core pipeline.

    Example:
        >>> from qaoa_core.config import settings
        >>> settings.optimizer.layers
        2
    """

    qubo: QuboConfig = Field(default_factory=QuboConfig)
    simulator: SimulatorConfig = Field(default_factory=SimulatorConfig)
    optimizer: OptimizerConfig = Field(default_factory=OptimizerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


settings = Settings()


def configure_logging(config: Optional[LoggingConfig] = None) -> None:
    """
    Apply the logging configuration to the root logger.

    Args:
        config: Logging settings (defaults to ``settings.logging``)
    """
    config = config or settings.logging
    logging.basicConfig(level=getattr(logging, config.level), format=config.format)
