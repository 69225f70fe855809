"""Exception types raised by the playground engine."""


class PlaygroundError(Exception):
    """Base class for all playground errors."""

    pass


class DatasetLoadError(PlaygroundError):
    """Raised when a dataset provider fails to deliver a dataset."""

    def __init__(self, dataset_id: str, reason: str):
        self.dataset_id = dataset_id
        self.reason = reason
        super().__init__(f"Failed to load dataset '{dataset_id}': {reason}")


class ShapeMismatchError(PlaygroundError):
    """Raised when an in-place weight refresh meets a table of a different shape.

    This always means a refresh was requested where a full rebuild was needed.
    """

    def __init__(self, expected: list[int], actual: list[int]):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Neuron table shape {expected} does not match model shape {actual}"
        )


class ModelDisposedError(PlaygroundError):
    """Raised when a model handle is used after it was disposed."""

    pass


class PhaseError(PlaygroundError):
    """Raised when an operation is not allowed in the current run phase."""

    def __init__(self, operation: str, phase: str):
        self.operation = operation
        self.phase = phase
        super().__init__(f"Cannot {operation} while run phase is '{phase}'")
