"""Exporter registry."""

from __future__ import annotations

from version_conductor.exporter.base import BaseExporter, escape_label, node_id, node_ids, short_module_name
from version_conductor.exporter.dot import DotConfig, DotExporter, to_dot, write_dot
from version_conductor.exporter.mermaid import MermaidConfig, MermaidExporter, to_mermaid, write_mermaid
from version_conductor.graph import DependencyGraph

_EXPORTERS: dict[str, type[BaseExporter]] = {
    "dot": DotExporter,
    "mermaid": MermaidExporter,
}


def export_formats() -> list[str]:
    return sorted(_EXPORTERS)


def get_exporter(fmt: str, config=None) -> BaseExporter:
    """Get an exporter for ``fmt`` ("dot" or "mermaid")."""
    exporter_cls = _EXPORTERS.get(fmt.lower())
    if exporter_cls is None:
        raise ValueError(f"No exporter for format: {fmt}")
    return exporter_cls(config)


def export_graph(graph: DependencyGraph, fmt: str, config=None) -> str:
    return get_exporter(fmt, config).render(graph)


__all__ = [
    "BaseExporter",
    "DotConfig",
    "DotExporter",
    "MermaidConfig",
    "MermaidExporter",
    "escape_label",
    "export_formats",
    "export_graph",
    "get_exporter",
    "node_id",
    "node_ids",
    "short_module_name",
    "to_dot",
    "to_mermaid",
    "write_dot",
    "write_mermaid",
]
