"""Snapshot persistence: single JSON documents and per-module file trees.

A snapshot document has three top-level fields, ``portfolio``, ``timestamp``
and ``modules`` (module id -> module). The tree form mirrors the same data as
``<root>/<ecosystem>/<account>/<name>.json`` so version control diffs stay
per module; modules without an owning account live under ``_external``.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from version_conductor.models import GraphSnapshot, Module, Portfolio

logger = logging.getLogger(__name__)

PORTFOLIO_FILE = "portfolio.json"
EXTERNAL_DIR = "_external"


def snapshot_to_json(snapshot: GraphSnapshot) -> str:
    return json.dumps(snapshot.to_dict(), indent=2) + "\n"


def snapshot_from_json(text: str) -> GraphSnapshot:
    """Parse a snapshot document.

    Raises:
        ValueError: the text is not JSON or lacks the snapshot structure.
    """
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("snapshot document must be a JSON object")
    try:
        return GraphSnapshot.from_dict(data)
    except (KeyError, TypeError, AttributeError) as e:
        raise ValueError(f"malformed snapshot: {e}") from e


def save_snapshot(snapshot: GraphSnapshot, path: str | Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(snapshot_to_json(snapshot), encoding="utf-8")
    logger.info("saved snapshot with %d modules to %s", len(snapshot.modules), path)
    return path


def load_snapshot(path: str | Path) -> GraphSnapshot:
    return snapshot_from_json(Path(path).read_text(encoding="utf-8"))


# ── Module tree ──────────────────────────────────────────────


def module_path(module: Module) -> Path:
    """Relative file path of ``module`` inside a module tree."""
    account = module.owning_account or EXTERNAL_DIR
    name = module.name
    if module.owning_account and name.startswith(module.owning_account + "/"):
        name = name[len(module.owning_account) + 1:]
    parts = _safe_parts(account) + _safe_parts(name)
    if len(parts) < 2:
        parts.append("_")
    return Path(module.ecosystem.value, *parts[:-1], parts[-1] + ".json")


def _safe_parts(text: str) -> list[str]:
    return [p for p in text.split("/") if p not in ("", ".", "..")]


def write_module_tree(snapshot: GraphSnapshot, root: str | Path) -> int:
    """Write one file per module plus ``portfolio.json``; return files written."""
    root = Path(root)
    root.mkdir(parents=True, exist_ok=True)
    header = {"portfolio": snapshot.portfolio.to_dict(), "timestamp": snapshot.timestamp}
    (root / PORTFOLIO_FILE).write_text(json.dumps(header, indent=2) + "\n", encoding="utf-8")

    count = 1
    for module_id in sorted(snapshot.modules):
        module = snapshot.modules[module_id]
        target = root / module_path(module)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(module.to_dict(), indent=2) + "\n", encoding="utf-8")
        count += 1
    logger.info("wrote %d module files under %s", count - 1, root)
    return count


def read_module_tree(root: str | Path) -> GraphSnapshot:
    """Rebuild a snapshot from a tree written by ``write_module_tree``."""
    root = Path(root)
    header: dict[str, Any] = {}
    header_path = root / PORTFOLIO_FILE
    if header_path.exists():
        header = json.loads(header_path.read_text(encoding="utf-8"))

    modules: dict[str, Module] = {}
    for path in sorted(root.rglob("*.json")):
        if path == header_path:
            continue
        try:
            module = Module.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except (ValueError, KeyError, TypeError) as e:
            raise ValueError(f"malformed module file {path}: {e}") from e
        modules[module.id] = module

    return GraphSnapshot(
        portfolio=Portfolio.from_dict(header.get("portfolio") or {}),
        modules=modules,
        timestamp=header.get("timestamp", ""),
    )
