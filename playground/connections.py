"""
Connection deriver.

One connection per (unit in layer L, unit in layer L+1) pair. ``strength``
is the single place where a raw signed weight becomes a [0, 1] visual
value; renderers must use it rather than re-deriving from ``raw_weight``.
"""

import math
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Iterable

from .log import get_logger
from .neuron_table import NeuronTable

log = get_logger("connections")

DEFAULT_CONTRAST = 3.0


@dataclass(frozen=True)
class Connection:
    id: str
    source_id: str
    dest_id: str
    raw_weight: float
    strength: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class StrengthBand(str, Enum):
    """Coarse strength buckets used for batched drawing."""

    STRONG_NEGATIVE = "strong_negative"
    WEAK_NEGATIVE = "weak_negative"
    NEUTRAL = "neutral"
    WEAK_POSITIVE = "weak_positive"
    STRONG_POSITIVE = "strong_positive"


def strength(raw_weight: float, contrast: float = DEFAULT_CONTRAST) -> float:
    """Logistic map of a signed weight onto [0, 1]; 0 maps to 0.5."""
    z = contrast * raw_weight
    # split keeps exp() from overflowing for large |z|
    if z >= 0:
        return 1.0 / (1.0 + math.exp(-z))
    e = math.exp(z)
    return e / (1.0 + e)


def strength_band(value: float) -> StrengthBand:
    if value < 0.3:
        return StrengthBand.STRONG_NEGATIVE
    if value < 0.45:
        return StrengthBand.WEAK_NEGATIVE
    if value <= 0.55:
        return StrengthBand.NEUTRAL
    if value <= 0.7:
        return StrengthBand.WEAK_POSITIVE
    return StrengthBand.STRONG_POSITIVE


def line_width(value: float) -> float:
    """Line width for a connection; grows with distance from neutral."""
    return 0.02 + abs(value - 0.5) * 2 * 0.07


def connection_id(source_id: str, dest_id: str) -> str:
    return f"{source_id}->{dest_id}"


def derive_connections(
    table: NeuronTable, contrast: float = DEFAULT_CONTRAST
) -> list[Connection]:
    """Derive every adjacent-layer connection from the table's weights.

    A destination whose weight vector is too short for a source index is a
    stale or partial table: the pair is logged and skipped.
    """
    connections = []
    for layer_index in range(table.num_layers - 1):
        sources = table.layer(layer_index)
        for dest in table.layer(layer_index + 1):
            for source in sources:
                if source.unit_index >= len(dest.incoming_weights):
                    log.warning(
                        f"No weight for {source.id} -> {dest.id} "
                        f"(fan-in {dest.fan_in}), skipping"
                    )
                    continue
                raw = dest.incoming_weights[source.unit_index]
                connections.append(
                    Connection(
                        id=connection_id(source.id, dest.id),
                        source_id=source.id,
                        dest_id=dest.id,
                        raw_weight=raw,
                        strength=strength(raw, contrast),
                    )
                )
    return connections


def group_by_band(
    connections: Iterable[Connection],
) -> dict[StrengthBand, list[Connection]]:
    groups: dict[StrengthBand, list[Connection]] = {band: [] for band in StrengthBand}
    for connection in connections:
        groups[strength_band(connection.strength)].append(connection)
    return groups
