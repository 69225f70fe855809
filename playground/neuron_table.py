"""
Neuron table synchronization.

The table is a flat list of logical neurons (every unit of every layer,
input units included) carrying each unit's bias and incoming weights.

Two distinct paths keep it in sync with the model:

* ``NeuronTable.rebuild_full`` builds a brand new table after the model was
  (re)built, since layer count and widths may both have changed.
* ``NeuronTable.refresh_weights`` overwrites bias/weights of the existing
  entries after a training step. Entries keep their identity, so anything
  keyed by neuron id (history, renderer state) stays attached.
"""

from dataclasses import dataclass, field
from typing import Iterator

import numpy as np

from .errors import ShapeMismatchError
from .model import ModelHandle
from .topology import NeuronKind, Topology

INPUT_ACTIVATION = "identity"


def neuron_id(layer_index: int, unit_index: int) -> str:
    """Stable id for the unit at (layer, unit)."""
    return f"neuron-{layer_index}-{unit_index}"


@dataclass
class LogicalNeuron:
    """One computational unit and its current parameters."""

    id: str
    layer_index: int
    unit_index: int
    kind: NeuronKind
    activation_kind: str
    bias: float = 0.0
    incoming_weights: list[float] = field(default_factory=list)

    @property
    def fan_in(self) -> int:
        return len(self.incoming_weights)

    @property
    def weight_summary(self) -> float:
        """Mean incoming weight; 0 for input units."""
        if not self.incoming_weights:
            return 0.0
        return float(np.mean(self.incoming_weights))


class NeuronTable:
    """Flat, layer-ordered table of logical neurons."""

    def __init__(self, neurons: list[LogicalNeuron]):
        self._neurons = neurons
        self._by_id = {n.id: n for n in neurons}
        self._layers: list[list[LogicalNeuron]] = []
        for n in neurons:
            while len(self._layers) <= n.layer_index:
                self._layers.append([])
            self._layers[n.layer_index].append(n)

    @classmethod
    def rebuild_full(cls, model: ModelHandle, topology: Topology) -> "NeuronTable":
        """Build a new table from every layer of ``model``.

        Raises:
            ShapeMismatchError: if ``topology`` does not describe ``model``.
        """
        widths = model.layer_widths()
        if widths != topology.layer_widths:
            raise ShapeMismatchError(topology.layer_widths, widths)

        neurons = [
            LogicalNeuron(
                id=neuron_id(0, unit),
                layer_index=0,
                unit_index=unit,
                kind=NeuronKind.INPUT,
                activation_kind=INPUT_ACTIVATION,
            )
            for unit in range(widths[0])
        ]

        for offset, params in enumerate(model.layers()):
            layer_index = offset + 1
            kind = topology.kind_of(layer_index)
            for unit in range(params.units):
                neurons.append(
                    LogicalNeuron(
                        id=neuron_id(layer_index, unit),
                        layer_index=layer_index,
                        unit_index=unit,
                        kind=kind,
                        activation_kind=params.activation,
                        bias=float(params.biases[unit]),
                        incoming_weights=params.weights[unit].astype(float).tolist(),
                    )
                )
        return cls(neurons)

    def refresh_weights(self, model: ModelHandle) -> None:
        """Overwrite bias and weights in place from ``model``.

        Raises:
            ShapeMismatchError: if the model's layer widths differ from the
                table's. Nothing is modified in that case.
        """
        widths = model.layer_widths()
        if widths != self.layer_widths:
            raise ShapeMismatchError(self.layer_widths, widths)

        for offset, params in enumerate(model.layers()):
            for neuron in self._layers[offset + 1]:
                neuron.bias = float(params.biases[neuron.unit_index])
                neuron.incoming_weights = (
                    params.weights[neuron.unit_index].astype(float).tolist()
                )

    @property
    def layer_widths(self) -> list[int]:
        return [len(layer) for layer in self._layers]

    @property
    def num_layers(self) -> int:
        return len(self._layers)

    def layer(self, layer_index: int) -> tuple[LogicalNeuron, ...]:
        return tuple(self._layers[layer_index])

    def get(self, neuron_id: str) -> LogicalNeuron | None:
        return self._by_id.get(neuron_id)

    def ids(self) -> list[str]:
        return [n.id for n in self._neurons]

    def __iter__(self) -> Iterator[LogicalNeuron]:
        return iter(self._neurons)

    def __len__(self) -> int:
        return len(self._neurons)

    def __contains__(self, neuron_id: object) -> bool:
        return neuron_id in self._by_id
