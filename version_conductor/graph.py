"""Dependency graph: module store, adjacency indices and graph queries."""

from __future__ import annotations

import copy
import heapq
from collections import deque

from version_conductor.ecosystems import Ecosystem, canonical_account
from version_conductor.models import (
    Cycle,
    GraphSnapshot,
    GraphStats,
    Module,
    Portfolio,
    StaleModule,
    UpgradeOrder,
    ValidationIssue,
    parse_module_id,
)


class DependencyGraph:
    """Directed graph of modules keyed by module id.

    ``_forward`` maps a module id to the ids it depends on and ``_reverse``
    maps a target id to the ids depending on it. Both are maintained on every
    ``add_module`` so the reverse index is always the exact transpose of the
    forward index. Targets need not be present in the graph.

    Queries hand out copies; nothing returned aliases internal state.
    """

    def __init__(self, portfolio: Portfolio | None = None):
        self.portfolio = copy.deepcopy(portfolio) if portfolio else Portfolio()
        self._modules: dict[str, Module] = {}
        self._forward: dict[str, list[str]] = {}
        self._reverse: dict[str, list[str]] = {}

    def __len__(self) -> int:
        return len(self._modules)

    def __contains__(self, module_id: object) -> bool:
        return module_id in self._modules

    # ── Mutation ─────────────────────────────────────────────

    def add_module(self, module: Module) -> None:
        """Insert ``module``, replacing any module with the same id."""
        module = copy.deepcopy(module)
        self._unlink(module.id)

        self._modules[module.id] = module
        targets = module.dependency_ids()
        self._forward[module.id] = targets
        for target in targets:
            self._reverse.setdefault(target, []).append(module.id)

    def _unlink(self, module_id: str) -> None:
        for target in self._forward.pop(module_id, []):
            dependents = self._reverse.get(target)
            if not dependents:
                continue
            dependents.remove(module_id)
            if not dependents:
                del self._reverse[target]

    # ── Lookups ──────────────────────────────────────────────

    def get_module(self, module_id: str) -> Module | None:
        """The module with ``module_id``, or None if it is not in the graph."""
        module = self._modules.get(module_id)
        return copy.deepcopy(module) if module is not None else None

    def has_module(self, module_id: str) -> bool:
        return module_id in self._modules

    def dependents(self, module_id: str) -> list[Module]:
        """Modules that list ``module_id`` among their dependencies."""
        return self._resolve(self._reverse.get(module_id, []))

    def dependencies(self, module_id: str) -> list[Module]:
        """Modules ``module_id`` depends on. Targets not in the graph are omitted."""
        return self._resolve(self._forward.get(module_id, []))

    def dependent_ids(self, module_id: str) -> list[str]:
        return list(self._reverse.get(module_id, []))

    def dependency_ids(self, module_id: str) -> list[str]:
        return list(self._forward.get(module_id, []))

    def transitive_dependents(self, module_id: str) -> list[Module]:
        """Every module that depends on ``module_id`` directly or indirectly.

        Sorted by id; the module itself is excluded even when it sits on a
        cycle.
        """
        seen: set[str] = set()
        queue = deque(self._reverse.get(module_id, []))
        while queue:
            current = queue.popleft()
            if current in seen or current == module_id:
                continue
            seen.add(current)
            queue.extend(self._reverse.get(current, []))
        return self._resolve(sorted(seen))

    def _resolve(self, ids: list[str]) -> list[Module]:
        return [copy.deepcopy(self._modules[i]) for i in ids if i in self._modules]

    # ── Listing ──────────────────────────────────────────────

    def module_ids(self) -> list[str]:
        return sorted(self._modules)

    def all_modules(self) -> list[Module]:
        """All modules, sorted by id."""
        return self._resolve(self.module_ids())

    def managed_modules(self) -> list[Module]:
        """Modules owned by a portfolio account, sorted by id."""
        return self._resolve([i for i in self.module_ids() if self._modules[i].is_managed])

    # ── Algorithms ───────────────────────────────────────────

    def upgrade_order(self) -> UpgradeOrder:
        """Topological order of managed modules, dependencies first.

        Only edges between two managed modules count toward ordering. Among
        modules that become ready at the same time the smallest id goes
        first. Managed modules that can never become ready are reported
        together as a single ``Cycle``; this never raises.
        """
        managed = {i for i, m in self._modules.items() if m.is_managed}
        in_degree = {
            i: sum(1 for t in self._forward.get(i, []) if t in managed)
            for i in managed
        }

        ready = [i for i, degree in in_degree.items() if degree == 0]
        heapq.heapify(ready)

        result = UpgradeOrder()
        visited: set[str] = set()
        while ready:
            current = heapq.heappop(ready)
            if current in visited:
                continue
            visited.add(current)
            result.ordered.append(copy.deepcopy(self._modules[current]))

            for dependent in self._reverse.get(current, []):
                if dependent not in managed:
                    continue
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    heapq.heappush(ready, dependent)

        remaining = sorted(managed - visited)
        if remaining:
            result.cycles.append(Cycle(modules=remaining))
        return result

    def stale_modules(self, dependency: str, min_version: str) -> list[StaleModule]:
        """Managed modules pinning ``dependency`` below ``min_version``.

        ``dependency`` is a canonical name (or a full module id). Versions are
        compared as plain strings, so ``"v0.10.0" < "v0.9.0"``; callers that
        need semantic ordering must zero-pad or pre-filter.
        """
        stale: list[StaleModule] = []
        for module in self.managed_modules():
            for ref in module.dependencies:
                _, name = parse_module_id(ref.target_id)
                if dependency not in (name, ref.target_id):
                    continue
                if ref.version < min_version:
                    stale.append(StaleModule(
                        module=module,
                        dependency=name,
                        current=ref.version,
                        required=min_version,
                    ))
        return stale

    # ── Derived graphs ───────────────────────────────────────

    def filter_by_account(self, account: str) -> DependencyGraph:
        """New graph with only the modules owned by ``account``.

        Edges to modules outside the filter are kept as references; they
        just do not resolve in the new graph.
        """
        target = canonical_account(account)
        return self._filtered(lambda m: canonical_account(m.owning_account) == target)

    def filter_by_ecosystem(self, ecosystem: Ecosystem) -> DependencyGraph:
        return self._filtered(lambda m: m.ecosystem == ecosystem)

    def _filtered(self, keep) -> DependencyGraph:
        filtered = DependencyGraph(self.portfolio)
        for module_id in self.module_ids():
            module = self._modules[module_id]
            if keep(module):
                filtered.add_module(module)
        return filtered

    def prune_dangling_edges(self) -> DependencyGraph:
        """New graph whose modules only reference targets present in it."""
        pruned = DependencyGraph(self.portfolio)
        for module_id in self.module_ids():
            module = copy.deepcopy(self._modules[module_id])
            module.dependencies = [d for d in module.dependencies if d.target_id in self._modules]
            pruned.add_module(module)
        return pruned

    # ── Reporting ────────────────────────────────────────────

    def stats(self) -> GraphStats:
        stats = GraphStats(total_modules=len(self._modules))
        for module in self._modules.values():
            if module.is_managed:
                stats.managed_modules += 1
            else:
                stats.external_modules += 1
            eco = module.ecosystem.value
            stats.by_ecosystem[eco] = stats.by_ecosystem.get(eco, 0) + 1
            stats.by_account[module.owning_account] = stats.by_account.get(module.owning_account, 0) + 1
            stats.total_edges += len(module.dependencies)
        stats.by_ecosystem = dict(sorted(stats.by_ecosystem.items()))
        stats.by_account = dict(sorted(stats.by_account.items()))
        return stats

    def validate(self) -> list[ValidationIssue]:
        """Structural problems: managed references to absent modules, and cycles."""
        issues: list[ValidationIssue] = []
        for module_id in self.module_ids():
            for ref in self._modules[module_id].dependencies:
                if ref.is_managed and ref.target_id not in self._modules:
                    issues.append(ValidationIssue(
                        kind="missing_dependency",
                        module=module_id,
                        message=f"dependency {ref.target_id} is marked as managed but not in graph",
                    ))

        for cycle in self.upgrade_order().cycles:
            issues.append(ValidationIssue(
                kind="cycle",
                module=cycle.modules[0],
                message=f"cycle detected involving: {', '.join(cycle.modules)}",
            ))
        return issues

    # ── Snapshots ────────────────────────────────────────────

    def snapshot(self) -> GraphSnapshot:
        return GraphSnapshot(
            portfolio=copy.deepcopy(self.portfolio),
            modules={i: copy.deepcopy(self._modules[i]) for i in self.module_ids()},
        )

    @classmethod
    def from_snapshot(cls, snapshot: GraphSnapshot) -> DependencyGraph:
        graph = cls(snapshot.portfolio)
        for module_id in sorted(snapshot.modules):
            graph.add_module(snapshot.modules[module_id])
        return graph
