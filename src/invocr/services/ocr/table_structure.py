"""
Table structure assignment.

Assigns row/column indices and spans to detected cell boxes. Cell boxes
extracted from photos never line up exactly, so rows and columns are found
by 1-D clustering of box centers with a threshold derived from the typical
cell size, and each box is then matched against bands around the cluster
centers. A box overlapping several bands spans several rows or columns.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field

from invocr.constants import (
    TABLE_BAND_HIT_RATIO,
    TABLE_DEFAULT_THRESHOLD_PX,
    TABLE_THRESHOLD_RATIO,
)

from .models import Box


@dataclass
class TableIndices:
    """Per-box grid coordinates, parallel to the input box list."""

    row_index: list[int] = field(default_factory=list)
    col_index: list[int] = field(default_factory=list)
    row_span: list[int] = field(default_factory=list)
    col_span: list[int] = field(default_factory=list)


def adaptive_threshold(sizes: Sequence[float]) -> float:
    """Half the mean size of non-degenerate boxes, or a fixed default."""
    valid = [size for size in sizes if size > 1.0]
    if not valid:
        return TABLE_DEFAULT_THRESHOLD_PX
    return sum(valid) / len(valid) * TABLE_THRESHOLD_RATIO


def cluster_centers(values: Sequence[float], threshold: float) -> list[float]:
    """Greedy 1-D clustering of sorted values.

    A value joins the last cluster when it is within ``threshold`` of that
    cluster's running mean; otherwise it starts a new cluster.

    Returns:
        Cluster means in ascending order.
    """
    clusters: list[list[float]] = []
    for value in sorted(values):
        if clusters:
            last = clusters[-1]
            if abs(value - sum(last) / len(last)) <= threshold:
                last.append(value)
                continue
        clusters.append([value])
    return [sum(cluster) / len(cluster) for cluster in clusters]


def match_bands(
    start: float, end: float, centers: Sequence[float], threshold: float
) -> tuple[int, int]:
    """Index and span of the bands hit by the interval ``[start, end]``.

    Each center defines the band ``[center - threshold, center + threshold]``.
    A band is hit when the overlap covers at least 30% of the shorter of
    the interval and the band. Without hits the nearest center is used
    (the first one on ties) with a span of 1.
    """
    span_size = max(end - start, 1.0)
    band_size = max(threshold * 2, 1.0)
    hits: list[int] = []
    for index, center in enumerate(centers):
        overlap = max(0.0, min(end, center + threshold) - max(start, center - threshold))
        if overlap / min(span_size, band_size) >= TABLE_BAND_HIT_RATIO:
            hits.append(index)

    if hits:
        return hits[0], len(hits)

    middle = (start + end) / 2
    nearest = min(range(len(centers)), key=lambda i: abs(centers[i] - middle))
    return nearest, 1


def assign_table_structure(boxes: Sequence[Box]) -> TableIndices:
    """Compute row/column indices and spans for every box.

    Args:
        boxes: Cell boxes in a common coordinate frame

    Returns:
        TableIndices with one entry per box, in input order.
    """
    if not boxes:
        return TableIndices()

    row_threshold = adaptive_threshold([box.height for box in boxes])
    col_threshold = adaptive_threshold([box.width for box in boxes])

    row_centers = cluster_centers([(box.top + box.bottom) / 2 for box in boxes], row_threshold)
    col_centers = cluster_centers([(box.left + box.right) / 2 for box in boxes], col_threshold)

    indices = TableIndices()
    for box in boxes:
        row, row_span = match_bands(box.top, box.bottom, row_centers, row_threshold)
        col, col_span = match_bands(box.left, box.right, col_centers, col_threshold)
        indices.row_index.append(row)
        indices.row_span.append(row_span)
        indices.col_index.append(col)
        indices.col_span.append(col_span)
    return indices
