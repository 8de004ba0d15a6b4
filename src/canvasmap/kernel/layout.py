"""Column placement for graphs that arrive without positions.

Sources go in the left column, targets in the right column and everything
else in the middle; rows follow list order at a fixed pitch. This is a
placement hint, not a layout solver.
"""

from typing import Dict, Iterable, Tuple

from .models import Position

SOURCE_COLUMN_X = 100
TRANSFORM_COLUMN_X = 450
TARGET_COLUMN_X = 800
TOP_Y = 100
ROW_PITCH = 120


def column_layout(nodes: Iterable[Tuple[str, str]]) -> Dict[str, Position]:
    """Assign a position to each ``(node_id, node_type)`` pair."""
    rows = {"source": 0, "transform": 0, "target": 0}
    layout: Dict[str, Position] = {}
    for node_id, node_type in nodes:
        if node_type == "source":
            column, x = "source", SOURCE_COLUMN_X
        elif node_type == "target":
            column, x = "target", TARGET_COLUMN_X
        else:
            column, x = "transform", TRANSFORM_COLUMN_X
        layout[node_id] = Position(x=x, y=TOP_Y + rows[column] * ROW_PITCH)
        rows[column] += 1
    return layout
