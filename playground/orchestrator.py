"""
Playground orchestration.

``Playground`` owns the topology, the single live model handle, the neuron
table and the derived layout/connections, and runs the rebuild pipeline in
dependency order:

    topology mutated -> old model disposed -> model built
        -> neuron table rebuilt -> layout computed -> connections derived

Training epochs only run refresh -> derive; topology and layout stay as
they are.
"""

import inspect
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Mapping

import numpy as np

from .config import InitializerKind, PlaygroundConfig
from .connections import Connection, derive_connections
from .datasets import DatasetBundle, DatasetProvider, interpret_output, parse_dataset_id
from .errors import DatasetLoadError, PhaseError
from .history import HistorySample, HistoryTracker
from .layout import Box, Vector3, compute_layout, input_box
from .log import get_logger
from .model import ModelHandle, build_model
from .neuron_table import NeuronTable
from .topology import RunPhase, Topology

log = get_logger("orchestrator")


@dataclass
class EpochReport:
    """Progress of one training epoch."""

    epoch: int
    last_epoch: int
    loss: float
    accuracy: float


class Playground:
    """Single owner of every view of the network being assembled."""

    def __init__(
        self,
        config: PlaygroundConfig | None = None,
        provider: Any = None,
        builder: Callable[..., ModelHandle] = build_model,
    ):
        self.config = config or PlaygroundConfig()
        self.provider = provider or DatasetProvider(self.config.datasets)
        self._build = builder

        self._topology = Topology(initializer=self.config.initializer)
        self._dataset: DatasetBundle | None = None
        self._model: ModelHandle | None = None
        self._table: NeuronTable | None = None
        self._layout: dict[str, Vector3] = {}
        self._connections: list[Connection] = []

        self.history = HistoryTracker(
            stride=self.config.history.stride, window=self.config.history.window
        )

        self._load_token = 0
        self._stop_requested = False
        self.rebuild_count = 0
        self.current_epoch = 0
        self.current_loss = 0.0
        self.current_accuracy = 0.0

    # ------------------------------------------------------------------
    # Read-only accessors
    # ------------------------------------------------------------------

    @property
    def topology(self) -> Topology:
        """A copy of the current topology."""
        return self._topology.copy()

    @property
    def run_phase(self) -> RunPhase:
        return self._topology.run_phase

    @property
    def dataset(self) -> DatasetBundle | None:
        return self._dataset

    @property
    def has_model(self) -> bool:
        return self._model is not None and not self._model.disposed

    @property
    def neuron_table(self) -> NeuronTable | None:
        return self._table

    @property
    def layout(self) -> Mapping[str, Vector3]:
        return MappingProxyType(self._layout)

    @property
    def connection_list(self) -> tuple[Connection, ...]:
        return tuple(self._connections)

    def neurons(self) -> list[dict[str, Any]]:
        """Neurons for the renderer, in table order."""
        if self._table is None:
            return []
        return [
            {
                "id": n.id,
                "position": self._layout[n.id],
                "bias": n.bias,
                "activation_kind": n.activation_kind,
                "layer_index": n.layer_index,
                "type": n.kind.value,
            }
            for n in self._table
        ]

    def connections(self) -> list[dict[str, Any]]:
        return [c.to_dict() for c in self._connections]

    def input_box(self) -> Box | None:
        """Box standing in for the input column when it is too wide to draw."""
        if self._table is None:
            return None
        if self._topology.input_width <= self.config.layout.input_box_threshold:
            return None
        return input_box(self._layout, self._topology)

    def history_of(self, neuron_id: str) -> list[HistorySample]:
        return self.history.history_of(neuron_id)

    def summary(self) -> dict[str, Any]:
        """Model overview: sizes, parameter count and training progress."""
        topology = self._topology
        return {
            "dataset": topology.dataset_id.value if topology.dataset_id else None,
            "input_neurons": topology.input_width,
            "output_neurons": topology.output_width,
            "num_neurons": topology.neuron_count if topology.dataset_id else 0,
            "num_layers": len(topology.hidden_layers),
            "layers": [
                {"name": layer.label, "neurons": layer.width}
                for layer in topology.hidden_layers
            ],
            "initializer": topology.initializer.value,
            "num_params": self._model.num_params if self.has_model else 0,
            "curr_acc": self.current_accuracy,
            "curr_loss": self.current_loss,
            "curr_phase": topology.run_phase.value,
            "curr_epoch": self.current_epoch,
        }

    # ------------------------------------------------------------------
    # Dataset selection
    # ------------------------------------------------------------------

    async def select_dataset(self, dataset_id: Any) -> bool:
        """Load a dataset and rebuild everything for its default plan.

        Returns False for unknown ids, while training, and when a newer
        selection started before this one's data arrived.

        Raises:
            DatasetLoadError: if the provider fails; state is unchanged.
        """
        parsed = parse_dataset_id(dataset_id)
        if parsed is None:
            log.warning(f"Unknown dataset '{dataset_id}', ignoring")
            return False
        if self.run_phase == RunPhase.TRAINING:
            log.warning("Cannot switch datasets while training")
            return False

        self._load_token += 1
        token = self._load_token

        try:
            result = self.provider.load(parsed)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            if token != self._load_token:
                log.info(f"Ignoring failure of superseded load of {parsed.value}")
                return False
            if isinstance(e, DatasetLoadError):
                raise
            raise DatasetLoadError(parsed.value, str(e)) from e

        if token != self._load_token:
            log.info(f"Discarding stale {parsed.value} dataset")
            return False

        bundle: DatasetBundle = result
        plan = self.config.datasets.plans[parsed]
        topology = Topology.for_dataset(
            parsed,
            bundle.input_width,
            bundle.output_dim,
            plan,
            self._topology.initializer,
        )
        self._install(topology, bundle)
        log.info(f"Selected dataset {parsed.value} with hidden layers {plan}")
        return True

    # ------------------------------------------------------------------
    # Topology mutations
    # ------------------------------------------------------------------

    def add_layer(self) -> bool:
        policy = self.config.layers
        if not self._editable("add a layer"):
            return False
        if not self._topology.can_add_layer(policy):
            log.warning(f"Layer limit of {policy.max_hidden_layers} reached")
            return False
        return self._commit(lambda t: t.add_layer(policy.new_layer_width))

    def remove_layer(self) -> bool:
        policy = self.config.layers
        if not self._editable("remove a layer"):
            return False
        if not self._topology.can_remove_layer(policy):
            log.warning(f"At least {policy.min_hidden_layers} hidden layer(s) required")
            return False
        return self._commit(lambda t: t.remove_layer())

    def resize_layer(self, index: int, width: int) -> bool:
        policy = self.config.layers
        if not self._editable("resize a layer"):
            return False
        if not self._topology.can_resize_layer(index, width, policy):
            log.warning(
                f"Rejected resize of layer {index} to {width} "
                f"(allowed 1..{policy.max_layer_width})"
            )
            return False
        return self._commit(lambda t: t.resize_layer(index, width))

    def add_neuron(self, index: int) -> bool:
        if not 0 <= index < len(self._topology.hidden_layers):
            log.warning(f"No hidden layer at index {index}")
            return False
        return self.resize_layer(index, self._topology.hidden_layers[index].width + 1)

    def remove_neuron(self, index: int) -> bool:
        if not 0 <= index < len(self._topology.hidden_layers):
            log.warning(f"No hidden layer at index {index}")
            return False
        return self.resize_layer(index, self._topology.hidden_layers[index].width - 1)

    def set_initializer(self, kind: Any) -> bool:
        try:
            parsed = InitializerKind(kind)
        except ValueError:
            log.warning(f"Unknown initializer '{kind}', ignoring")
            return False
        if not self._editable("change the initializer"):
            return False

        def apply(topology: Topology) -> None:
            topology.initializer = parsed

        return self._commit(apply)

    def _editable(self, action: str) -> bool:
        if self.run_phase == RunPhase.TRAINING:
            log.warning(f"Cannot {action} while training")
            return False
        return True

    def _commit(self, mutate: Callable[[Topology], None]) -> bool:
        if self._dataset is None:
            # nothing to rebuild yet
            mutate(self._topology)
            return True

        candidate = self._topology.copy()
        mutate(candidate)
        self._install(candidate, self._dataset)
        return True

    # ------------------------------------------------------------------
    # Rebuild pipeline
    # ------------------------------------------------------------------

    def _install(self, topology: Topology, dataset: DatasetBundle) -> None:
        """Make ``topology`` current and rebuild every derived view.

        Every rebuild starts a fresh model at epoch 0, so tracked histories
        are emptied. On failure the previous topology and dataset are
        reinstated and rebuilt before the error propagates.
        """
        previous_topology = self._topology
        previous_dataset = self._dataset

        topology.run_phase = RunPhase.READY
        self._topology = topology
        self._dataset = dataset
        try:
            self._rebuild()
        except Exception as e:
            log.error(f"Rebuild failed, restoring previous topology: {e}")
            self._topology = previous_topology
            self._dataset = previous_dataset
            if previous_dataset is not None:
                self._rebuild()
                self._topology.run_phase = RunPhase.READY
                self._restart_epochs()
            else:
                self._clear_derived()
            raise

        self._restart_epochs()

    def _rebuild(self) -> None:
        self._dispose_model()
        topology = self._topology
        dataset = self._dataset

        model = self._build(
            dataset.input_shape,
            topology.hidden_widths,
            topology.initializer,
            topology.output_width,
            dataset.output_activation,
            self.config.training,
        )
        self._model = model
        self._table = NeuronTable.rebuild_full(model, topology)
        self._layout = compute_layout(topology, self.config.layout.spacing)
        self._connections = derive_connections(
            self._table, self.config.connections.contrast
        )
        self.rebuild_count += 1
        log.debug(
            f"Rebuilt {topology.layer_widths}: {len(self._table)} neurons, "
            f"{len(self._connections)} connections"
        )

    def _dispose_model(self) -> None:
        if self._model is not None:
            self._model.dispose()
            self._model = None

    def _clear_derived(self) -> None:
        self._dispose_model()
        self._table = None
        self._layout = {}
        self._connections = []

    def _restart_epochs(self) -> None:
        self.history.prune(self._table.ids())
        self.history.clear()
        self.current_epoch = 0
        self.current_loss = 0.0
        self.current_accuracy = 0.0

    def teardown(self) -> None:
        """Release the model and every derived view."""
        self._clear_derived()
        self._topology.run_phase = RunPhase.IDLE
        self._dataset = None

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def inspect_neuron(self, neuron_id: str) -> bool:
        if self._table is None or neuron_id not in self._table:
            log.warning(f"Unknown neuron {neuron_id}")
            return False
        self.history.track(neuron_id)
        return True

    def uninspect_neuron(self, neuron_id: str) -> None:
        self.history.untrack(neuron_id)

    def _sample_history(self, epoch: int, final: bool) -> None:
        tracked = [nid for nid in self.history.tracked if nid in self._table]
        if not tracked or not self.history.should_sample(epoch, final):
            return

        inputs = self._dataset.inputs
        outputs = self._model.layer_outputs(inputs)
        for nid in tracked:
            neuron = self._table.get(nid)
            if neuron.layer_index == 0:
                activation = float(np.mean(inputs[:, neuron.unit_index]))
            else:
                layer_out = outputs[neuron.layer_index - 1]
                activation = float(np.mean(layer_out[:, neuron.unit_index]))
            self.history.on_training_tick(
                epoch,
                nid,
                neuron.weight_summary,
                neuron.bias,
                activation,
                final=final,
            )

    # ------------------------------------------------------------------
    # Training and inference
    # ------------------------------------------------------------------

    def train(
        self,
        epochs: int | None = None,
        on_epoch: Callable[[EpochReport], None] | None = None,
    ) -> list[EpochReport]:
        """Train from the ready phase, refreshing the table every epoch.

        Epoch numbers continue from the last run until the next rebuild.

        Raises:
            PhaseError: if the run phase is not ready.
        """
        if self.run_phase != RunPhase.READY or not self.has_model:
            raise PhaseError("train", self.run_phase.value)
        epochs = epochs if epochs is not None else self.config.training.epochs
        if epochs < 1:
            raise ValueError("epochs must be at least 1")

        self._topology.run_phase = RunPhase.TRAINING
        self._stop_requested = False
        first = self.current_epoch + 1
        last = self.current_epoch + epochs
        reports = []
        log.info(f"Training epochs {first}..{last}")

        # anything but a completed run, KeyboardInterrupt included, ends in ready
        stopped = True
        try:
            if self.current_epoch == 0:
                self._sample_history(0, final=False)

            for epoch in range(first, last + 1):
                metrics = self._model.fit_epoch(
                    self._dataset.inputs, self._dataset.labels
                )
                self._table.refresh_weights(self._model)
                self._connections = derive_connections(
                    self._table, self.config.connections.contrast
                )
                self.current_epoch = epoch
                self.current_loss = metrics.loss
                self.current_accuracy = metrics.accuracy

                report = EpochReport(epoch, last, metrics.loss, metrics.accuracy)
                reports.append(report)
                if on_epoch is not None:
                    on_epoch(report)

                final = epoch == last or self._stop_requested
                self._sample_history(epoch, final=final)
                if self._stop_requested:
                    log.info(f"Training stopped after epoch {epoch}")
                    break
            stopped = self._stop_requested
        finally:
            self._topology.run_phase = RunPhase.READY if stopped else RunPhase.TRAINED
            self._stop_requested = False

        log.info(
            f"Epoch {self.current_epoch}: loss {self.current_loss:.4f}, "
            f"accuracy {self.current_accuracy:.3f}"
        )
        return reports

    def stop_training(self) -> bool:
        """Ask the training loop to stop after the current epoch."""
        if self.run_phase != RunPhase.TRAINING:
            return False
        self._stop_requested = True
        return True

    def reset_training(self) -> None:
        """Rebuild the model with fresh weights and return to ready."""
        if self.run_phase not in (RunPhase.READY, RunPhase.TRAINED):
            raise PhaseError("reset training", self.run_phase.value)
        self._install(self._topology.copy(), self._dataset)

    def predict(self, inputs: Any) -> list[float]:
        """Output vector for one input sample.

        Raises:
            PhaseError: unless the model has finished training.
        """
        if self.run_phase != RunPhase.TRAINED:
            raise PhaseError("predict", self.run_phase.value)
        return self._model.predict(inputs)[0].astype(float).tolist()

    def interpret(self, inputs: Any) -> dict[str, Any]:
        """Dataset-specific reading of ``predict`` (class, confidence, value)."""
        output = self.predict(inputs)
        return interpret_output(self._topology.dataset_id, output)
