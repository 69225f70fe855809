"""
Network topology: the user-edited layer configuration.

The topology is independent of trained parameters. Bounds checks live here
so the orchestration can treat every violation as a no-op.
"""

from dataclasses import dataclass, field
from enum import Enum

from .config import DatasetId, InitializerKind, LayerPolicy


class RunPhase(str, Enum):
    """Run state of the playground."""

    IDLE = "idle"
    READY = "ready"
    TRAINING = "training"
    TRAINED = "trained"


class NeuronKind(str, Enum):
    """Position of a neuron's layer within the network."""

    INPUT = "input"
    HIDDEN = "hidden"
    OUTPUT = "output"


@dataclass
class HiddenLayer:
    """A hidden layer descriptor."""

    label: str
    width: int


def layer_label(index: int) -> str:
    """Display label for the hidden layer at ``index``."""
    return f"Layer {index + 1}"


@dataclass
class Topology:
    """Layer configuration of the network being assembled."""

    dataset_id: DatasetId | None = None
    input_width: int = 0
    output_width: int = 0
    hidden_layers: list[HiddenLayer] = field(default_factory=list)
    initializer: InitializerKind = InitializerKind.GLOROT_UNIFORM
    run_phase: RunPhase = RunPhase.IDLE

    @classmethod
    def for_dataset(
        cls,
        dataset_id: DatasetId,
        input_width: int,
        output_width: int,
        plan: list[int],
        initializer: InitializerKind,
    ) -> "Topology":
        """Fresh topology for a newly selected dataset."""
        return cls(
            dataset_id=dataset_id,
            input_width=input_width,
            output_width=output_width,
            hidden_layers=[
                HiddenLayer(layer_label(i), width) for i, width in enumerate(plan)
            ],
            initializer=initializer,
            run_phase=RunPhase.READY,
        )

    @property
    def hidden_widths(self) -> list[int]:
        return [layer.width for layer in self.hidden_layers]

    @property
    def layer_widths(self) -> list[int]:
        """Widths of every column: input, hidden layers, output."""
        return [self.input_width, *self.hidden_widths, self.output_width]

    @property
    def num_columns(self) -> int:
        return len(self.hidden_layers) + 2

    @property
    def neuron_count(self) -> int:
        return sum(self.layer_widths)

    @property
    def connection_count(self) -> int:
        widths = self.layer_widths
        return sum(a * b for a, b in zip(widths, widths[1:]))

    def kind_of(self, layer_index: int) -> NeuronKind:
        if layer_index == 0:
            return NeuronKind.INPUT
        if layer_index == self.num_columns - 1:
            return NeuronKind.OUTPUT
        return NeuronKind.HIDDEN

    def copy(self) -> "Topology":
        return Topology(
            dataset_id=self.dataset_id,
            input_width=self.input_width,
            output_width=self.output_width,
            hidden_layers=[
                HiddenLayer(layer.label, layer.width) for layer in self.hidden_layers
            ],
            initializer=self.initializer,
            run_phase=self.run_phase,
        )

    def relabel(self) -> None:
        for i, layer in enumerate(self.hidden_layers):
            layer.label = layer_label(i)

    # Bounds checks, one per mutation

    def can_add_layer(self, policy: LayerPolicy) -> bool:
        return len(self.hidden_layers) < policy.max_hidden_layers

    def can_remove_layer(self, policy: LayerPolicy) -> bool:
        return len(self.hidden_layers) > max(policy.min_hidden_layers, 0)

    def can_resize_layer(self, index: int, width: int, policy: LayerPolicy) -> bool:
        if not 0 <= index < len(self.hidden_layers):
            return False
        if width < 1 or width > policy.max_layer_width:
            return False
        return True

    # Mutations; callers check bounds first

    def add_layer(self, width: int) -> None:
        self.hidden_layers.append(HiddenLayer(layer_label(len(self.hidden_layers)), width))

    def remove_layer(self) -> HiddenLayer:
        removed = self.hidden_layers.pop()
        self.relabel()
        return removed

    def resize_layer(self, index: int, width: int) -> None:
        self.hidden_layers[index].width = width
