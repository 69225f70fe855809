"""
Plotly 3-D rendering of a playground snapshot.

Consumes only the renderer-facing lists (``neurons()``/``connections()``)
and draws connections in batches, one trace per strength band.
"""

from typing import Any, Iterable

import plotly.graph_objects as go

from .connections import Connection, StrengthBand, group_by_band, line_width
from .layout import Box

NEURON_COLORSCALE = "RdBu"
BAND_COLORSCALE = "RdYlGn"


def _connection_trace(
    band: StrengthBand,
    connections: list[Connection],
    positions: dict[str, Any],
) -> go.Scatter3d:
    xs: list[float | None] = []
    ys: list[float | None] = []
    zs: list[float | None] = []
    for c in connections:
        start, end = positions[c.source_id], positions[c.dest_id]
        xs.extend([start[0], end[0], None])
        ys.extend([start[1], end[1], None])
        zs.extend([start[2], end[2], None])

    mean_strength = sum(c.strength for c in connections) / len(connections)
    return go.Scatter3d(
        x=xs,
        y=ys,
        z=zs,
        mode="lines",
        name=band.value,
        hoverinfo="skip",
        line=dict(
            width=max(1.0, line_width(mean_strength) * 40),
            color=[mean_strength] * len(xs),
            colorscale=BAND_COLORSCALE,
            cmin=0.0,
            cmax=1.0,
        ),
    )


def _box_trace(box: Box) -> go.Mesh3d:
    cx, cy, cz = box.center
    hx, hy, hz = box.size.x / 2, box.size.y / 2, box.size.z / 2
    xs = [cx - hx, cx - hx, cx + hx, cx + hx] * 2
    ys = [cy - hy, cy + hy, cy + hy, cy - hy] * 2
    zs = [cz - hz] * 4 + [cz + hz] * 4
    return go.Mesh3d(
        x=xs,
        y=ys,
        z=zs,
        i=[7, 0, 0, 0, 4, 4, 6, 6, 4, 0, 3, 2],
        j=[3, 4, 1, 2, 5, 6, 5, 2, 0, 1, 6, 3],
        k=[0, 7, 2, 3, 6, 7, 1, 1, 5, 5, 7, 6],
        name="inputs",
        color="lightgray",
        opacity=0.6,
        hoverinfo="name",
    )


def build_figure(
    neurons: Iterable[dict[str, Any]],
    connections: Iterable[dict[str, Any]],
    title: str = "Network",
    input_box: Box | None = None,
) -> go.Figure:
    """Figure with one marker per neuron and batched connection lines.

    With ``input_box`` the input neurons are drawn as a single box instead
    of individual markers.
    """
    neurons = list(neurons)
    positions = {n["id"]: n["position"] for n in neurons}
    shown = neurons
    if input_box is not None:
        shown = [n for n in neurons if n["type"] != "input"]
    conns = [Connection(**c) for c in connections]

    fig = go.Figure()
    for band, group in group_by_band(conns).items():
        if group:
            fig.add_trace(_connection_trace(band, group, positions))
    if input_box is not None:
        fig.add_trace(_box_trace(input_box))

    fig.add_trace(
        go.Scatter3d(
            x=[n["position"][0] for n in shown],
            y=[n["position"][1] for n in shown],
            z=[n["position"][2] for n in shown],
            mode="markers",
            name="neurons",
            text=[
                f"{n['id']} ({n['type']}, {n['activation_kind']})<br>bias {n['bias']:.3f}"
                for n in shown
            ],
            hoverinfo="text",
            marker=dict(
                size=8,
                color=[n["bias"] for n in shown],
                colorscale=NEURON_COLORSCALE,
                cmid=0.0,
                line=dict(width=1, color="black"),
            ),
        )
    )

    fig.update_layout(
        title=title,
        showlegend=True,
        scene=dict(
            xaxis=dict(visible=False),
            yaxis=dict(visible=False),
            zaxis=dict(visible=False),
            aspectmode="data",
        ),
        margin=dict(l=0, r=0, t=40, b=0),
    )
    return fig


def write_html(fig: go.Figure, path: str) -> str:
    fig.write_html(path, include_plotlyjs="cdn")
    return path
