"""
Neuron Playground Package
Interactive assembly, training and 3-D layout of small feed-forward networks.
"""

# Configuration
from .config import (
    PlaygroundConfig,
    DatasetId,
    InitializerKind,
    load_config,
    load_config_from_string,
)

# Errors
from .errors import (
    PlaygroundError,
    DatasetLoadError,
    ShapeMismatchError,
    ModelDisposedError,
    PhaseError,
)

# Engine components
from .topology import Topology, HiddenLayer, RunPhase, NeuronKind
from .datasets import DatasetBundle, DatasetProvider
from .model import ModelHandle, build_model
from .neuron_table import NeuronTable, LogicalNeuron, neuron_id
from .layout import Vector3, compute_layout
from .connections import Connection, derive_connections, strength
from .history import HistoryTracker, HistorySample

# Orchestration
from .orchestrator import Playground, EpochReport
from .log import setup_logger

__all__ = [
    # Configuration
    "PlaygroundConfig",
    "DatasetId",
    "InitializerKind",
    "load_config",
    "load_config_from_string",
    # Errors
    "PlaygroundError",
    "DatasetLoadError",
    "ShapeMismatchError",
    "ModelDisposedError",
    "PhaseError",
    # Engine components
    "Topology",
    "HiddenLayer",
    "RunPhase",
    "NeuronKind",
    "DatasetBundle",
    "DatasetProvider",
    "ModelHandle",
    "build_model",
    "NeuronTable",
    "LogicalNeuron",
    "neuron_id",
    "Vector3",
    "compute_layout",
    "Connection",
    "derive_connections",
    "strength",
    "HistoryTracker",
    "HistorySample",
    # Orchestration
    "Playground",
    "EpochReport",
    "setup_logger",
]

__version__ = "0.1.0"
