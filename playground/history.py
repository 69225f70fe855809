"""Per-neuron parameter history sampled during training."""

from collections import deque
from typing import Iterable, NamedTuple

from .log import get_logger

log = get_logger("history")


class HistorySample(NamedTuple):
    epoch: int
    weight: float
    bias: float
    activation: float


class HistoryTracker:
    """Bounded (weight, bias, activation) series for inspected neurons.

    Histories are keyed by neuron id only. The tracker never keeps a neuron
    alive: ``prune`` drops every id that left the network.
    """

    def __init__(self, stride: int = 5, window: int = 10):
        if stride < 1:
            raise ValueError("stride must be at least 1")
        if window < 2:
            raise ValueError("window must be at least 2")
        self.stride = stride
        self.window = window
        self._histories: dict[str, deque[HistorySample]] = {}

    def track(self, neuron_id: str) -> None:
        self._histories.setdefault(neuron_id, deque())

    def untrack(self, neuron_id: str) -> None:
        self._histories.pop(neuron_id, None)

    def is_tracked(self, neuron_id: str) -> bool:
        return neuron_id in self._histories

    @property
    def tracked(self) -> list[str]:
        return list(self._histories)

    def should_sample(self, epoch: int, final: bool = False) -> bool:
        return epoch == 0 or final or epoch % self.stride == 0

    def on_training_tick(
        self,
        epoch: int,
        neuron_id: str,
        weight: float,
        bias: float,
        activation: float,
        final: bool = False,
    ) -> bool:
        """Record a sample if ``epoch`` is due. Returns True when appended."""
        samples = self._histories.get(neuron_id)
        if samples is None or not self.should_sample(epoch, final):
            return False
        if samples and samples[-1].epoch == epoch:
            return False

        samples.append(HistorySample(epoch, weight, bias, activation))
        if len(samples) > self.window:
            # keep the epoch-0 anchor, drop the oldest sample after it
            if samples[0].epoch == 0:
                del samples[1]
            else:
                samples.popleft()
        return True

    def reset(self, neuron_id: str) -> None:
        if neuron_id in self._histories:
            self._histories[neuron_id].clear()

    def clear(self) -> None:
        """Empty every history while keeping the tracked ids."""
        for samples in self._histories.values():
            samples.clear()

    def prune(self, valid_ids: Iterable[str]) -> list[str]:
        """Stop tracking ids that no longer exist. Returns the dropped ids."""
        valid = set(valid_ids)
        dropped = [nid for nid in self._histories if nid not in valid]
        for nid in dropped:
            del self._histories[nid]
        if dropped:
            log.debug(f"Dropped history for removed neurons: {dropped}")
        return dropped

    def history_of(self, neuron_id: str) -> list[HistorySample]:
        return list(self._histories.get(neuron_id, ()))

    def epochs_of(self, neuron_id: str) -> list[int]:
        return [sample.epoch for sample in self.history_of(neuron_id)]
