"""
Unit tests for configuration management.
"""

import logging

import pytest
from pydantic import ValidationError

from qaoa_core.config import (
    LoggingConfig,
    OptimizerConfig,
    QuboConfig,
    Settings,
    SimulatorConfig,
    configure_logging,
)


class TestQuboConfig:
    """Test penalty configuration."""

    def test_defaults_success(self):
        """Test default penalty settings."""
        config = QuboConfig()

        assert config.penalty_margin == 1.0
        assert config.penalty_scale == 1.0
        assert config.penalty_weight is None
        assert config.uses_fixed_weight is False

    def test_validation_failure(self):
        """Test non-positive margins and sub-unit scales are rejected."""
        with pytest.raises(ValidationError):
            QuboConfig(penalty_margin=0.0)

        with pytest.raises(ValidationError):
            QuboConfig(penalty_scale=0.5)

        with pytest.raises(ValidationError):
            QuboConfig(penalty_weight=-1.0)

    def test_environment_override(self, monkeypatch):
        """Test QUBO_ environment variables are read."""
        monkeypatch.setenv("QUBO_PENALTY_WEIGHT", "12.5")

        config = QuboConfig()
        assert config.penalty_weight == 12.5
        assert config.uses_fixed_weight is True


class TestSimulatorConfig:
    """Test simulator limits."""

    def test_defaults_success(self):
        """Test default limits and derived state size."""
        config = SimulatorConfig(max_qubits=12)

        assert config.state_vector_bytes == 65536
        assert SimulatorConfig().max_qubits == 16

    def test_validation_failure(self):
        """Test the hard qubit ceiling and memory headroom bounds."""
        with pytest.raises(ValidationError):
            SimulatorConfig(max_qubits=31)

        with pytest.raises(ValidationError):
            SimulatorConfig(max_qubits=0)

        with pytest.raises(ValidationError):
            SimulatorConfig(memory_headroom=1.5)


class TestOptimizerConfig:
    """Test optimizer settings."""

    def test_defaults_success(self):
        """Test defaults and computed fields."""
        config = OptimizerConfig(layers=3, seed=7)

        assert config.num_parameters == 6
        assert config.is_parallel is False
        assert config.initialization_strategies == ["linear_ramp", "random_uniform", "two_local"]
        assert OptimizerConfig(max_workers=4).is_parallel is True
        assert config.mode == "multi_start"
        assert config.tolerance is None
        assert config.noise_tolerance_factor == 1.0
        assert config.parameter_bounds is None

    def test_search_options_success(self):
        """Test layer-by-layer mode, bounds and the standard_qaoa start are accepted."""
        config = OptimizerConfig(
            mode="layer_by_layer",
            parameter_bounds=(0.0, 3.14, 0.0, 1.57),
            initialization_strategies=["standard_qaoa"],
            tolerance=0.01,
        )

        assert config.mode == "layer_by_layer"
        assert config.parameter_bounds == (0.0, 3.14, 0.0, 1.57)
        assert config.tolerance == 0.01

    def test_search_options_failure(self):
        """Test unordered or infinite bounds and unknown modes are rejected."""
        with pytest.raises(ValidationError, match="min < max"):
            OptimizerConfig(parameter_bounds=(1.0, 0.5, 0.0, 1.0))

        with pytest.raises(ValidationError, match="finite"):
            OptimizerConfig(parameter_bounds=(0.0, float("inf"), 0.0, 1.0))

        with pytest.raises(ValidationError):
            OptimizerConfig(mode="gradient")

        with pytest.raises(ValidationError):
            OptimizerConfig(noise_tolerance_factor=0.0)

    def test_validation_failure(self):
        """Test shot budgets and strategy lists are validated."""
        with pytest.raises(ValidationError, match="final_shots"):
            OptimizerConfig(optimization_shots=1000, final_shots=500)

        with pytest.raises(ValidationError, match="must not be empty"):
            OptimizerConfig(initialization_strategies=[])

        with pytest.raises(ValidationError):
            OptimizerConfig(initialization_strategies=["simulated_annealing"])

        with pytest.raises(ValidationError):
            OptimizerConfig(layers=0)

    def test_environment_override(self, monkeypatch):
        """Test OPTIMIZER_ environment variables are read."""
        monkeypatch.setenv("OPTIMIZER_LAYERS", "4")
        monkeypatch.setenv("OPTIMIZER_SEED", "123")
        monkeypatch.setenv("OPTIMIZER_MODE", "layer_by_layer")
        monkeypatch.setenv("OPTIMIZER_PARAMETER_BOUNDS", "[0, 3, 0, 1.5]")

        config = OptimizerConfig()
        assert config.layers == 4
        assert config.seed == 123
        assert config.mode == "layer_by_layer"
        assert config.parameter_bounds == (0.0, 3.0, 0.0, 1.5)


class TestSettings:
    """Test the aggregate settings and logging setup."""

    def test_settings_sections(self):
        """Test every section is present with its defaults."""
        settings = Settings()

        assert settings.qubo.penalty_margin == 1.0
        assert settings.simulator.max_qubits == 16
        assert settings.optimizer.layers == 2
        assert settings.logging.level == "INFO"

    def test_logging_level_failure(self):
        """Test unknown log levels are rejected."""
        with pytest.raises(ValidationError):
            LoggingConfig(level="VERBOSE")

    def test_configure_logging(self, monkeypatch):
        """Test configure_logging passes level and format to basicConfig."""
        captured = {}
        monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: captured.update(kwargs))

        configure_logging(LoggingConfig(level="DEBUG"))

        assert captured["level"] == logging.DEBUG
        assert "%(levelname)s" in captured["format"]
