"""Plotly sunburst trace payloads."""

from __future__ import annotations

from typing import Any, Dict, List, Tuple

from layersizes.models import ComparisonNode, FlatChart

TRACE_STYLE: Dict[str, Any] = {
    "outsidetextfont": {"size": 20, "color": "#377eb8"},
    "leaf": {"opacity": 0.4},
    "marker": {"line": {"width": 2}},
}


def sunburst_trace(chart: FlatChart) -> Dict[str, Any]:
    """Trace for a flattened layer; parents show the size of their subtree."""
    return {
        "type": "sunburst",
        "labels": list(chart.labels),
        "values": list(chart.values),
        "ids": list(chart.ids),
        "parents": list(chart.parents),
        "branchvalues": "total",
        **TRACE_STYLE,
    }


def comparison_trace(root: ComparisonNode) -> Dict[str, Any]:
    """Trace for one side of a comparison.

    Directory values are zero, so ``branchvalues`` is ``remainder`` and the
    renderer sums the children. Ids use the same path scheme as
    :func:`~layersizes.charts.flatten.flatten` so that both sides of a
    comparison agree on ids.
    """
    labels: List[str] = []
    values: List[int] = []
    ids: List[str] = []
    parents: List[str] = []
    colors: List[str] = []

    pending: List[Tuple[ComparisonNode, str]] = [(child, "") for child in reversed(root.children)]
    while pending:
        node, prefix = pending.pop()
        node_id = f"{prefix}/{node.name}"
        labels.append(node.name)
        values.append(node.value)
        ids.append(node_id)
        parents.append(prefix)
        colors.append(node.color.value)
        pending.extend((child, node_id) for child in reversed(node.children))

    return {
        "type": "sunburst",
        "labels": labels,
        "values": values,
        "ids": ids,
        "parents": parents,
        "branchvalues": "remainder",
        "outsidetextfont": TRACE_STYLE["outsidetextfont"],
        "leaf": TRACE_STYLE["leaf"],
        "marker": {"colors": colors, "line": {"width": 2}},
    }
