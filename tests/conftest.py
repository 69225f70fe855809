"""
Pytest fixtures for playground tests.
"""

import asyncio
import sys
from pathlib import Path

import numpy as np
import pytest

# Add the project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from playground.config import DatasetId, PlaygroundConfig
from playground.datasets import DatasetBundle, make_sine, make_xor
from playground.errors import DatasetLoadError
from playground.orchestrator import Playground


def make_digits(samples: int = 20) -> DatasetBundle:
    """Small stand-in for MNIST with the same shapes and head."""
    rng = np.random.default_rng(0)
    targets = rng.integers(0, 10, size=samples)
    labels = np.zeros((samples, 10), dtype=np.float32)
    labels[np.arange(samples), targets] = 1.0
    return DatasetBundle(
        dataset_id=DatasetId.MNIST,
        inputs=rng.random((samples, 784), dtype=np.float32),
        labels=labels,
        input_shape=(784,),
        output_dim=10,
        output_activation="softmax",
    )


class FakeProvider:
    """In-memory dataset provider.

    Loads can be held open with ``hold(dataset_id)`` and completed later with
    ``release(dataset_id)`` to simulate slow downloads.
    """

    def __init__(self):
        self.calls = []
        self.failing = set()
        self._gates = {}

    def hold(self, dataset_id):
        self._gates[DatasetId(dataset_id)] = asyncio.Event()

    def release(self, dataset_id):
        self._gates[DatasetId(dataset_id)].set()

    async def load(self, dataset_id):
        dataset_id = DatasetId(dataset_id)
        self.calls.append(dataset_id)
        gate = self._gates.get(dataset_id)
        if gate is not None:
            await gate.wait()
        if dataset_id in self.failing:
            raise DatasetLoadError(dataset_id.value, "network unreachable")
        if dataset_id == DatasetId.XOR:
            return make_xor()
        if dataset_id == DatasetId.SINE:
            return make_sine(20)
        return make_digits()


@pytest.fixture
def config():
    """Default configuration with a fixed seed and small batches."""
    return PlaygroundConfig(training={"seed": 7, "batch_size": 4, "epochs": 10})


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def playground(config, provider):
    """Playground with XOR selected (hidden plan [3])."""
    pg = Playground(config, provider=provider)
    assert asyncio.run(pg.select_dataset("xor"))
    yield pg
    pg.teardown()


@pytest.fixture
def sample_config_yaml():
    """Return a minimal sample configuration YAML."""
    return """
layers:
  max_hidden_layers: 4
  max_layer_width: 6
history:
  stride: 3
  window: 8
training:
  epochs: 25
  optimizer: "sgd"
datasets:
  plans:
    xor: [2, 2]
log_level: "debug"
"""
