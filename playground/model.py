"""
Model builder: dense feed-forward classifier/regressor on top of torch.

The handle is the single owner of the module's tensors. Orchestration code
must dispose a handle before building its replacement.
"""

from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np
import torch
import torch.nn as nn

from .config import InitializerKind, OptimizerType, TrainingConfig
from .errors import ModelDisposedError
from .log import get_logger

log = get_logger("model")

HIDDEN_ACTIVATION = "relu"


@dataclass
class LayerParameters:
    """Weights and biases of one dense layer.

    ``weights`` has shape (units, inputs): row ``j`` holds the incoming
    weights of unit ``j``.
    """

    weights: np.ndarray
    biases: np.ndarray
    activation: str

    @property
    def units(self) -> int:
        return int(self.biases.shape[0])


@dataclass
class EpochMetrics:
    """Loss and accuracy of one training pass."""

    loss: float
    accuracy: float


def _init_weights(layer: nn.Linear, initializer: InitializerKind) -> None:
    if initializer == InitializerKind.HE_NORMAL:
        nn.init.kaiming_normal_(layer.weight, nonlinearity="relu")
    elif initializer == InitializerKind.RANDOM_NORMAL:
        nn.init.normal_(layer.weight, mean=0.0, std=0.1)
    elif initializer == InitializerKind.ZEROS:
        nn.init.zeros_(layer.weight)
    else:
        nn.init.xavier_uniform_(layer.weight)
    nn.init.zeros_(layer.bias)


def _activation_module(name: str) -> nn.Module:
    if name == "relu":
        return nn.ReLU()
    if name == "sigmoid":
        return nn.Sigmoid()
    if name == "softmax":
        return nn.Softmax(dim=1)
    raise ValueError(f"Unsupported activation: {name}")


def _make_optimizer(
    params: Any, optimizer: OptimizerType, learning_rate: float
) -> torch.optim.Optimizer:
    if optimizer == OptimizerType.SGD:
        return torch.optim.SGD(params, lr=learning_rate)
    if optimizer == OptimizerType.RMSPROP:
        return torch.optim.RMSprop(params, lr=learning_rate)
    return torch.optim.Adam(params, lr=learning_rate)


class ModelHandle:
    """Owns a compiled, trainable model and its optimizer."""

    _live = 0

    def __init__(
        self,
        module: nn.Sequential,
        activations: list[str],
        training: TrainingConfig,
    ):
        self._module: nn.Sequential | None = module
        self._activations = activations
        self.training = training
        self.output_activation = activations[-1]
        self._optimizer: torch.optim.Optimizer | None = _make_optimizer(
            module.parameters(), training.optimizer, training.learning_rate
        )
        self._disposed = False
        ModelHandle._live += 1

    @classmethod
    def live_count(cls) -> int:
        """Number of handles built and not yet disposed, process wide."""
        return cls._live

    @property
    def disposed(self) -> bool:
        return self._disposed

    def _require_module(self) -> nn.Sequential:
        if self._disposed or self._module is None:
            raise ModelDisposedError("Model handle has been disposed")
        return self._module

    def _dense_layers(self) -> list[nn.Linear]:
        return [m for m in self._require_module() if isinstance(m, nn.Linear)]

    @property
    def num_params(self) -> int:
        return sum(p.numel() for p in self._require_module().parameters())

    def layers(self) -> list[LayerParameters]:
        """Per-layer parameters in forward order (input layer excluded)."""
        result = []
        with torch.no_grad():
            for linear, activation in zip(self._dense_layers(), self._activations):
                result.append(
                    LayerParameters(
                        weights=linear.weight.detach().cpu().numpy().copy(),
                        biases=linear.bias.detach().cpu().numpy().copy(),
                        activation=activation,
                    )
                )
        return result

    def layer_widths(self) -> list[int]:
        """Unit counts of every column, starting with the input width."""
        dense = self._dense_layers()
        return [dense[0].in_features, *(layer.out_features for layer in dense)]

    def _loss(self, outputs: torch.Tensor, targets: torch.Tensor) -> torch.Tensor:
        if self.output_activation == "softmax":
            log_probs = torch.log(outputs.clamp_min(1e-7))
            return nn.functional.nll_loss(log_probs, targets.argmax(dim=1))
        return nn.functional.mse_loss(outputs, targets)

    def _accuracy(self, outputs: torch.Tensor, targets: torch.Tensor) -> float:
        if self.output_activation == "softmax":
            correct = outputs.argmax(dim=1) == targets.argmax(dim=1)
        else:
            correct = (outputs > 0.5) == (targets > 0.5)
        return float(correct.float().mean().item())

    def fit_epoch(self, inputs: np.ndarray, labels: np.ndarray) -> EpochMetrics:
        """Run one pass over the data in shuffled mini-batches."""
        module = self._require_module()
        x = torch.as_tensor(inputs, dtype=torch.float32)
        y = torch.as_tensor(labels, dtype=torch.float32)

        module.train()
        batch_size = self.training.batch_size
        order = torch.randperm(x.shape[0])
        for start in range(0, x.shape[0], batch_size):
            idx = order[start : start + batch_size]
            self._optimizer.zero_grad()
            loss = self._loss(module(x[idx]), y[idx])
            loss.backward()
            self._optimizer.step()

        module.eval()
        with torch.no_grad():
            outputs = module(x)
            return EpochMetrics(
                loss=float(self._loss(outputs, y).item()),
                accuracy=self._accuracy(outputs, y),
            )

    def predict(self, inputs: Sequence[float] | np.ndarray) -> np.ndarray:
        module = self._require_module()
        x = torch.as_tensor(np.asarray(inputs, dtype=np.float32))
        if x.ndim == 1:
            x = x.unsqueeze(0)
        module.eval()
        with torch.no_grad():
            return module(x).cpu().numpy()

    def layer_outputs(self, inputs: np.ndarray) -> list[np.ndarray]:
        """Post-activation outputs of every dense layer for ``inputs``."""
        module = self._require_module()
        x = torch.as_tensor(np.asarray(inputs, dtype=np.float32))
        outputs = []
        module.eval()
        with torch.no_grad():
            for layer in module:
                x = layer(x)
                if not isinstance(layer, nn.Linear):
                    outputs.append(x.cpu().numpy())
        return outputs

    def dispose(self) -> None:
        """Release the model's tensors. Safe to call more than once."""
        if self._disposed:
            return
        self._disposed = True
        self._module = None
        self._optimizer = None
        ModelHandle._live -= 1
        log.debug("Disposed model handle")


def build_model(
    input_shape: Sequence[int],
    hidden_widths: Sequence[int],
    initializer: InitializerKind,
    output_width: int,
    output_activation: str,
    training: TrainingConfig | None = None,
) -> ModelHandle:
    """Build input -> hidden layers in order -> output."""
    training = training or TrainingConfig()
    if training.seed is not None:
        torch.manual_seed(training.seed)

    in_features = int(np.prod(input_shape))
    modules: list[nn.Module] = []
    activations: list[str] = []
    for width in [*hidden_widths, output_width]:
        is_output = len(activations) == len(hidden_widths)
        activation = output_activation if is_output else HIDDEN_ACTIVATION
        linear = nn.Linear(in_features, width)
        _init_weights(linear, initializer)
        modules.extend([linear, _activation_module(activation)])
        activations.append(activation)
        in_features = width

    handle = ModelHandle(nn.Sequential(*modules), activations, training)
    log.info(
        f"Built model {[int(np.prod(input_shape)), *hidden_widths, output_width]} "
        f"({initializer.value}, {handle.num_params} params)"
    )
    return handle
