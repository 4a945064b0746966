"""Mermaid flowchart output."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TextIO

from version_conductor.exporter.base import (
    BaseExporter,
    graph_node_ids,
    short_module_name,
    visible_edges,
    visible_modules,
)
from version_conductor.graph import DependencyGraph
from version_conductor.models import parse_module_id

MANAGED_CLASS = "classDef managed fill:#4CAF50,color:#fff"


@dataclass
class MermaidConfig:
    direction: str = "TB"  # TB, BT, LR or RL
    show_external: bool = False


def _mermaid_label(text: str) -> str:
    return text.replace('"', "#quot;").replace("\n", " ")


class MermaidExporter(BaseExporter):
    format_name = "mermaid"
    file_extension = ".mmd"

    def __init__(self, config: MermaidConfig | None = None):
        self.config = config or MermaidConfig()

    def write(self, graph: DependencyGraph, stream: TextIO) -> None:
        cfg = self.config
        stream.write(f"graph {cfg.direction}\n")

        ids = graph_node_ids(graph)
        written: set[str] = set()

        def write_node(module_id: str, name: str, managed: bool) -> None:
            if module_id in written:
                return
            written.add(module_id)
            nid = ids[module_id]
            style = ":::managed" if managed else ""
            stream.write(f'    {nid}["{_mermaid_label(short_module_name(name))}"]{style}\n')

        for m in visible_modules(graph, cfg.show_external):
            write_node(m.id, m.name, m.is_managed)
            for ref in visible_edges(graph, m, cfg.show_external):
                _, target_name = parse_module_id(ref.target_id)
                write_node(ref.target_id, target_name, ref.is_managed)
                stream.write(f"    {ids[m.id]} --> {ids[ref.target_id]}\n")

        stream.write(f"    {MANAGED_CLASS}\n")


def to_mermaid(graph: DependencyGraph, config: MermaidConfig | None = None) -> str:
    return MermaidExporter(config).render(graph)


def write_mermaid(graph: DependencyGraph, stream: TextIO, config: MermaidConfig | None = None) -> None:
    MermaidExporter(config).write(graph, stream)
