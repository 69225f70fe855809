"""
Layout engine: one 3-D position per neuron, derived from topology alone.

Columns are the input layer, the hidden layers and the output layer,
centered on the origin along x; units are centered along y; z is 0.
Positions never depend on weights, so identical shapes always produce
identical maps.
"""

from dataclasses import dataclass
from typing import Mapping, NamedTuple

from .neuron_table import neuron_id
from .topology import Topology


class Vector3(NamedTuple):
    x: float
    y: float
    z: float


@dataclass(frozen=True)
class Box:
    """Axis-aligned box given by its center and edge lengths."""

    center: Vector3
    size: Vector3


def column_x(column: int, num_columns: int, spacing: float) -> float:
    return (column - (num_columns - 1) / 2) * spacing


def unit_y(unit: int, units: int, spacing: float) -> float:
    units = max(units, 1)
    return ((units - 1) / 2 - unit) * spacing


def layout_widths(widths: list[int], spacing: float = 2.0) -> dict[str, Vector3]:
    """Positions for a network whose columns have the given widths."""
    positions = {}
    num_columns = len(widths)
    for column, units in enumerate(widths):
        x = column_x(column, num_columns, spacing)
        for unit in range(units):
            positions[neuron_id(column, unit)] = Vector3(
                x, unit_y(unit, units, spacing), 0.0
            )
    return positions


def compute_layout(topology: Topology, spacing: float = 2.0) -> dict[str, Vector3]:
    """Map every neuron id of ``topology`` to its position."""
    return layout_widths(topology.layer_widths, spacing)


def input_box(
    layout: Mapping[str, Vector3], topology: Topology, margin: float = 0.5
) -> Box:
    """Box a renderer can draw in place of a wide input column.

    The box is as wide as a single neuron and as tall as the first hidden
    (or output) column it feeds, so it stays readable for e.g. 784 pixels.
    """
    inputs = [layout[neuron_id(0, u)] for u in range(topology.input_width)]
    fed = [layout[neuron_id(1, u)] for u in range(topology.layer_widths[1])]
    if not inputs or not fed:
        return Box(Vector3(0.0, 0.0, 0.0), Vector3(1.0, 1.0, 1.0))

    min_x = min(p.x for p in inputs) - margin
    max_x = max(p.x for p in inputs) + margin
    min_y = min(p.y for p in fed) - margin
    max_y = max(p.y for p in fed) + margin

    center = Vector3((min_x + max_x) / 2, (min_y + max_y) / 2, 0.0)
    size = Vector3(1.0, max(max_y - min_y + 1.0, len(fed) * 1.2), 0.5)
    return Box(center, size)
