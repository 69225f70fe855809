"""Dataset providers: logic gate, periodic function and MNIST loaders."""

import asyncio
from dataclasses import dataclass
from typing import Any, Callable

import numpy as np

from .config import DatasetId, DatasetsConfig
from .errors import DatasetLoadError
from .log import get_logger

log = get_logger("datasets")

MNIST_CLASSES = 10
MNIST_PIXELS = 28 * 28


@dataclass
class DatasetBundle:
    """Inputs and labels for one dataset, plus the head the model needs."""

    dataset_id: DatasetId
    inputs: np.ndarray
    labels: np.ndarray
    input_shape: tuple[int, ...]
    output_dim: int
    output_activation: str

    @property
    def input_width(self) -> int:
        return int(np.prod(self.input_shape))

    @property
    def num_samples(self) -> int:
        return int(self.inputs.shape[0])


def parse_dataset_id(value: Any) -> DatasetId | None:
    """Return the DatasetId for ``value`` or None when it is unknown."""
    try:
        return DatasetId(value)
    except ValueError:
        return None


def make_xor() -> DatasetBundle:
    """The four XOR truth table rows."""
    inputs = np.array([[0, 0], [0, 1], [1, 0], [1, 1]], dtype=np.float32)
    labels = np.array([[0], [1], [1], [0]], dtype=np.float32)
    return DatasetBundle(
        dataset_id=DatasetId.XOR,
        inputs=inputs,
        labels=labels,
        input_shape=(2,),
        output_dim=1,
        output_activation="sigmoid",
    )


def make_sine(points: int = 50) -> DatasetBundle:
    """One period of sin(x), with targets rescaled into the sigmoid range."""
    x = np.linspace(0.0, 2.0 * np.pi, points, dtype=np.float32)
    y = (np.sin(x) + 1.0) / 2.0
    return DatasetBundle(
        dataset_id=DatasetId.SINE,
        inputs=x.reshape(-1, 1),
        labels=y.reshape(-1, 1).astype(np.float32),
        input_shape=(1,),
        output_dim=1,
        output_activation="sigmoid",
    )


def _load_with_fallback(
    dataset_cls: type,
    root_candidates: list[str],
    **kwargs: Any,
) -> Any:
    """Try loading a dataset from multiple root candidates."""
    last_err: Exception | None = None
    for root in root_candidates:
        try:
            return dataset_cls(root=root, **kwargs)
        except Exception as e:
            last_err = e
            continue
    if last_err is not None:
        raise RuntimeError(f"Failed to load dataset: {last_err}") from last_err
    raise RuntimeError("Failed to load dataset")


def make_mnist(samples: int = 1000, data_root: str = "./data") -> DatasetBundle:
    """First ``samples`` MNIST training digits, flattened to [0, 1] pixels."""
    from torchvision import datasets

    dataset = _load_with_fallback(
        datasets.MNIST,
        [f"{data_root}/mnist", data_root],
        train=True,
        download=True,
    )
    images = dataset.data[:samples].numpy().astype(np.float32) / 255.0
    targets = dataset.targets[:samples].numpy()

    labels = np.zeros((len(targets), MNIST_CLASSES), dtype=np.float32)
    labels[np.arange(len(targets)), targets] = 1.0

    return DatasetBundle(
        dataset_id=DatasetId.MNIST,
        inputs=images.reshape(-1, MNIST_PIXELS),
        labels=labels,
        input_shape=(MNIST_PIXELS,),
        output_dim=MNIST_CLASSES,
        output_activation="softmax",
    )


class DatasetProvider:
    """Loads datasets by id without blocking the caller's event loop."""

    def __init__(self, config: DatasetsConfig | None = None):
        self.config = config or DatasetsConfig()
        self._loaders: dict[DatasetId, Callable[[], DatasetBundle]] = {
            DatasetId.XOR: make_xor,
            DatasetId.SINE: lambda: make_sine(self.config.sine_points),
            DatasetId.MNIST: lambda: make_mnist(
                self.config.mnist_samples, self.config.data_root
            ),
        }

    async def load(self, dataset_id: DatasetId | str) -> DatasetBundle:
        parsed = parse_dataset_id(dataset_id)
        if parsed is None:
            raise DatasetLoadError(str(dataset_id), "unknown dataset")

        log.info(f"Loading dataset {parsed.value}")
        try:
            bundle = await asyncio.to_thread(self._loaders[parsed])
        except Exception as e:
            raise DatasetLoadError(parsed.value, str(e)) from e

        log.info(
            f"Loaded {parsed.value}: {bundle.num_samples} samples, "
            f"input {bundle.input_shape}, output {bundle.output_dim}"
        )
        return bundle


def interpret_output(dataset_id: DatasetId, output: list[float]) -> dict[str, Any]:
    """Turn a raw model output vector into a dataset-specific answer."""
    if dataset_id == DatasetId.XOR:
        value = float(output[0])
        return {
            "prediction": 1 if value > 0.5 else 0,
            "confidence": value * 100.0,
        }
    if dataset_id == DatasetId.MNIST:
        confidences = [float(v) * 100.0 for v in output]
        digit = int(np.argmax(output))
        return {
            "prediction": digit,
            "confidence": confidences[digit],
            "confidences": confidences,
        }
    # sine targets were rescaled into [0, 1]
    return {"prediction": float(output[0]) * 2.0 - 1.0}
