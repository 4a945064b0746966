"""Abstract base exporter and identifier/label helpers shared by the formats."""

from __future__ import annotations

import abc
import hashlib
import io
import re
from typing import Iterable, TextIO

from version_conductor.graph import DependencyGraph
from version_conductor.models import Module, ModuleRef

_UNSAFE_ID = re.compile(r"[^A-Za-z0-9_]")


def node_id(module_id: str) -> str:
    """``go-modules:github.com/acme/a`` -> ``go_modules_github_com_acme_a``."""
    return _UNSAFE_ID.sub("_", module_id)


def node_ids(module_ids: Iterable[str]) -> dict[str, str]:
    """Map module ids to node identifiers that stay distinct.

    Ids that sanitize to the same identifier (``a-b`` and ``a.b``) each get
    a short digest suffix; every other id keeps its plain ``node_id``.
    """
    groups: dict[str, list[str]] = {}
    for module_id in sorted(set(module_ids)):
        groups.setdefault(node_id(module_id), []).append(module_id)
    mapping: dict[str, str] = {}
    for nid, members in groups.items():
        for module_id in members:
            mapping[module_id] = nid if len(members) == 1 else f"{nid}_{_digest(module_id)}"
    return mapping


def graph_node_ids(graph: DependencyGraph) -> dict[str, str]:
    """``node_ids`` over every module and every referenced target in ``graph``."""
    ids = set(graph.module_ids())
    for module in graph.all_modules():
        ids.update(ref.target_id for ref in module.dependencies)
    return node_ids(ids)


def _digest(module_id: str) -> str:
    return hashlib.sha1(module_id.encode("utf-8")).hexdigest()[:8]


def short_module_name(name: str) -> str:
    """Last path segment of a module name (``github.com/acme/widget`` -> ``widget``)."""
    return name.rstrip("/").rsplit("/", 1)[-1] or name


def escape_label(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


class BaseExporter(abc.ABC):
    """Base class for graph description formats."""

    format_name: str = ""
    file_extension: str = ""

    @abc.abstractmethod
    def write(self, graph: DependencyGraph, stream: TextIO) -> None:
        """Write ``graph`` to ``stream``."""

    def render(self, graph: DependencyGraph) -> str:
        buf = io.StringIO()
        self.write(graph, buf)
        return buf.getvalue()


def visible_modules(graph: DependencyGraph, show_external: bool) -> list[Module]:
    """Modules to draw, sorted by id."""
    return [m for m in graph.all_modules() if show_external or m.is_managed]


def visible_edges(
    graph: DependencyGraph,
    module: Module,
    show_external: bool,
) -> list[ModuleRef]:
    """Outgoing references of ``module`` to draw, sorted by target id.

    Without ``show_external`` only managed references whose target is in the
    graph are kept.
    """
    refs = sorted(module.dependencies, key=lambda r: r.target_id)
    if show_external:
        return refs
    return [r for r in refs if r.is_managed and graph.has_module(r.target_id)]
