"""
Configuration module for the neuron playground.

Provides Pydantic models for YAML configuration parsing and validation.
"""

import os
from enum import Enum
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

CONFIG_ENV_VAR = "PLAYGROUND_CONFIG"


class DatasetId(str, Enum):
    """Supported datasets."""

    XOR = "xor"
    SINE = "sine"
    MNIST = "mnist"


class InitializerKind(str, Enum):
    """Weight initializers offered to the user."""

    GLOROT_UNIFORM = "glorot_uniform"
    HE_NORMAL = "he_normal"
    RANDOM_NORMAL = "random_normal"
    ZEROS = "zeros"


class OptimizerType(str, Enum):
    """Optimizers available for training."""

    SGD = "sgd"
    ADAM = "adam"
    RMSPROP = "rmsprop"


class LayerPolicy(BaseModel):
    """Bounds applied to hidden layer edits."""

    max_hidden_layers: int = Field(default=5, ge=1)
    min_hidden_layers: int = Field(default=1, ge=0)
    max_layer_width: int = Field(default=8, ge=1)
    new_layer_width: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def validate_bounds(self):
        if self.min_hidden_layers > self.max_hidden_layers:
            raise ValueError("min_hidden_layers cannot exceed max_hidden_layers")
        if self.new_layer_width > self.max_layer_width:
            raise ValueError("new_layer_width cannot exceed max_layer_width")
        return self


class LayoutConfig(BaseModel):
    """Spatial layout settings."""

    spacing: float = Field(default=2.0, gt=0.0)
    input_box_threshold: int = Field(default=16, ge=1)


class ConnectionConfig(BaseModel):
    """Connection strength settings."""

    contrast: float = Field(default=3.0, gt=0.0)


class HistoryConfig(BaseModel):
    """Per-neuron history sampling settings."""

    stride: int = Field(default=5, ge=1)
    window: int = Field(default=10, ge=2)


class TrainingConfig(BaseModel):
    """Configuration for model training."""

    epochs: int = Field(default=100, ge=1)
    batch_size: int = Field(default=32, ge=1)
    learning_rate: float = Field(default=0.05, gt=0.0)
    optimizer: OptimizerType = OptimizerType.ADAM
    seed: int | None = None


def _default_plans() -> dict[DatasetId, list[int]]:
    return {
        DatasetId.XOR: [3],
        DatasetId.SINE: [8, 8],
        DatasetId.MNIST: [8],
    }


def _fit_plan(widths: list[int], policy: LayerPolicy) -> list[int]:
    """Clamp a built-in plan to the layer policy."""
    fitted = [min(width, policy.max_layer_width) for width in widths]
    fitted = fitted[: policy.max_hidden_layers]
    while len(fitted) < policy.min_hidden_layers:
        fitted.append(policy.new_layer_width)
    return fitted


class DatasetsConfig(BaseModel):
    """Dataset loading settings and hidden layer plans.

    Only plans given explicitly are validated against the layer policy;
    ``PlaygroundConfig`` fills in the built-in plans for the rest, clamped
    to the policy.
    """

    plans: dict[DatasetId, list[int]] = Field(default_factory=dict)
    mnist_samples: int = Field(default=1000, ge=1)
    sine_points: int = Field(default=50, ge=2)
    data_root: str = "./data"

    @field_validator("plans")
    @classmethod
    def validate_plans(cls, v):
        for dataset_id, widths in v.items():
            if any(width < 1 for width in widths):
                raise ValueError(f"Invalid layer width in plan for {dataset_id.value}")
        return v


class PlaygroundConfig(BaseModel):
    """Root configuration for the playground."""

    layers: LayerPolicy = Field(default_factory=LayerPolicy)
    layout: LayoutConfig = Field(default_factory=LayoutConfig)
    connections: ConnectionConfig = Field(default_factory=ConnectionConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    training: TrainingConfig = Field(default_factory=TrainingConfig)
    datasets: DatasetsConfig = Field(default_factory=DatasetsConfig)
    initializer: InitializerKind = InitializerKind.GLOROT_UNIFORM
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        allowed = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"Invalid log level: {v}. Allowed: {sorted(allowed)}")
        return v.upper()

    @model_validator(mode="after")
    def validate_plans_within_policy(self):
        plans = self.datasets.plans
        for dataset_id, widths in plans.items():
            if len(widths) > self.layers.max_hidden_layers:
                raise ValueError(
                    f"Plan for {dataset_id.value} has more layers than max_hidden_layers"
                )
            if len(widths) < self.layers.min_hidden_layers:
                raise ValueError(
                    f"Plan for {dataset_id.value} has fewer layers than min_hidden_layers"
                )
            if any(width > self.layers.max_layer_width for width in widths):
                raise ValueError(
                    f"Plan for {dataset_id.value} exceeds max_layer_width"
                )

        merged = {
            dataset_id: _fit_plan(widths, self.layers)
            for dataset_id, widths in _default_plans().items()
        }
        merged.update(plans)
        self.datasets = self.datasets.model_copy(update={"plans": merged})
        return self


def load_config(config_path: str | Path) -> PlaygroundConfig:
    """Load and validate playground configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Validated PlaygroundConfig instance

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML parsing fails
        pydantic.ValidationError: If config validation fails
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r") as f:
        raw_config = yaml.safe_load(f)

    if raw_config is None:
        raise ValueError("Empty configuration file")

    return PlaygroundConfig(**raw_config)


def load_config_from_string(config_string: str) -> PlaygroundConfig:
    """Load and validate playground configuration from YAML string."""
    raw_config = yaml.safe_load(config_string)

    if raw_config is None:
        raise ValueError("Empty configuration string")

    return PlaygroundConfig(**raw_config)


def load_default_config() -> PlaygroundConfig:
    """Load the file named by PLAYGROUND_CONFIG, or built-in defaults."""
    config_path = os.getenv(CONFIG_ENV_VAR)
    if config_path:
        return load_config(config_path)
    return PlaygroundConfig()
