"""Graphviz DOT output."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TextIO

from version_conductor.exporter.base import (
    BaseExporter,
    escape_label,
    graph_node_ids,
    short_module_name,
    visible_edges,
    visible_modules,
)
from version_conductor.graph import DependencyGraph
from version_conductor.models import parse_module_id

EXTERNAL_CLUSTER = "external"


@dataclass
class DotConfig:
    title: str = "Dependency Graph"
    rank_dir: str = "TB"  # "TB" or "LR"
    show_external: bool = False
    show_versions: bool = True
    cluster_by_account: bool = True
    color_managed: str = "#4CAF50"
    color_external: str = "#9E9E9E"


@dataclass
class _Node:
    id: str
    label: str
    managed: bool
    account: str


class DotExporter(BaseExporter):
    format_name = "dot"
    file_extension = ".dot"

    def __init__(self, config: DotConfig | None = None):
        self.config = config or DotConfig()

    def write(self, graph: DependencyGraph, stream: TextIO) -> None:
        cfg = self.config
        modules = visible_modules(graph, cfg.show_external)
        ids = graph_node_ids(graph)

        nodes: dict[str, _Node] = {}
        edges: list[tuple[str, str, str]] = []
        for m in modules:
            nodes[m.id] = _Node(m.id, short_module_name(m.name), m.is_managed, m.owning_account)
        for m in modules:
            for ref in visible_edges(graph, m, cfg.show_external):
                if ref.target_id not in nodes and not graph.has_module(ref.target_id):
                    # Referenced but never discovered: draw it as external.
                    _, name = parse_module_id(ref.target_id)
                    nodes[ref.target_id] = _Node(ref.target_id, short_module_name(name), False, "")
                edges.append((m.id, ref.target_id, ref.version))

        stream.write("digraph dependencies {\n")
        stream.write(f'  label="{escape_label(cfg.title)}";\n')
        stream.write('  labelloc="t";\n')
        stream.write(f'  rankdir="{escape_label(cfg.rank_dir)}";\n')
        stream.write("  node [shape=box, style=filled];\n")
        stream.write("\n")

        ordered = [nodes[i] for i in sorted(nodes)]
        if cfg.cluster_by_account:
            clusters: dict[str, list[_Node]] = {}
            for node in ordered:
                clusters.setdefault(node.account, []).append(node)
            # Named accounts alphabetically, the unowned cluster last.
            names = sorted(a for a in clusters if a)
            if "" in clusters:
                names.append("")
            for index, account in enumerate(names):
                stream.write(f"  subgraph cluster_{index} {{\n")
                stream.write(f'    label="{escape_label(account or EXTERNAL_CLUSTER)}";\n')
                stream.write("    style=dashed;\n")
                for node in clusters[account]:
                    self._write_node(stream, ids[node.id], node, "    ")
                stream.write("  }\n\n")
        else:
            for node in ordered:
                self._write_node(stream, ids[node.id], node, "  ")
            stream.write("\n")

        for source, target, version in sorted(edges):
            if cfg.show_versions and version:
                stream.write(f'  {ids[source]} -> {ids[target]} [label="{escape_label(version)}"];\n')
            else:
                stream.write(f"  {ids[source]} -> {ids[target]};\n")

        stream.write("}\n")

    def _write_node(self, stream: TextIO, nid: str, node: _Node, indent: str) -> None:
        color = self.config.color_managed if node.managed else self.config.color_external
        stream.write(
            f'{indent}{nid} [label="{escape_label(node.label)}", fillcolor="{color}"];\n'
        )


def to_dot(graph: DependencyGraph, config: DotConfig | None = None) -> str:
    return DotExporter(config).render(graph)


def write_dot(graph: DependencyGraph, stream: TextIO, config: DotConfig | None = None) -> None:
    DotExporter(config).write(graph, stream)
