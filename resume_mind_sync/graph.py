"""Knowledge-graph endpoint paths.

Document-level graphs live under ``/documents/{id}/graph``; the aggregated
graph for the signed-in user under ``/user/graph``. The paths are also the
cache keys the dashboard invalidates when an analysis finishes.
"""

from __future__ import annotations

from typing import Iterable
from urllib.parse import quote

from .documents import DOCUMENTS_BASE

USER_GRAPH_BASE = "/user/graph"


def _query(
    types: Iterable[str] | None,
    max_nodes: int | None,
    max_depth: int | None = None,
) -> str:
    parts: list[str] = []
    type_list = [t for t in (types or []) if t]
    if type_list:
        parts.append("types=" + quote(",".join(type_list), safe=","))
    if max_nodes is not None:
        parts.append(f"max_nodes={int(max_nodes)}")
    if max_depth is not None:
        parts.append(f"max_depth={int(max_depth)}")
    return f"?{'&'.join(parts)}" if parts else ""


def document_graph_path(
    document_id: str,
    types: Iterable[str] | None = None,
    max_nodes: int | None = None,
) -> str:
    """Example: ``/documents/42/graph?types=Skill,Company&max_nodes=50``."""
    base = f"{DOCUMENTS_BASE}/{quote(str(document_id), safe='')}/graph"
    return base + _query(types, max_nodes)


def user_graph_path(
    types: Iterable[str] | None = None,
    max_nodes: int | None = None,
    max_depth: int | None = None,
) -> str:
    return USER_GRAPH_BASE + _query(types, max_nodes, max_depth)
