"""Data models for the dependency graph engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from version_conductor.ecosystems import Ecosystem, canonical_account


def new_module_id(ecosystem: Ecosystem, name: str) -> str:
    """``new_module_id(Ecosystem.GO, "github.com/acme/widget")`` -> ``go-modules:github.com/acme/widget``."""
    return f"{ecosystem.value}:{name}"


def parse_module_id(module_id: str) -> tuple[Ecosystem | None, str]:
    """Split a module id into its ecosystem and canonical name.

    Ids without a recognized ecosystem prefix are returned whole as the name.
    """
    tag, sep, name = module_id.partition(":")
    if not sep:
        return None, module_id
    for member in Ecosystem:
        if member.value == tag:
            return member, name
    return None, module_id


# ── Hosting ──────────────────────────────────────────────────


@dataclass
class RepositoryInfo:
    """One repository as reported by the hosting service."""
    name: str
    default_branch: str = "main"
    archived: bool = False
    fork: bool = False
    owning_account_login: str = ""
    full_name: str = ""
    description: str = ""
    private: bool = False
    html_url: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "defaultBranch": self.default_branch,
            "archived": self.archived,
            "fork": self.fork,
            "owningAccountLogin": self.owning_account_login,
            "fullName": self.full_name,
            "description": self.description,
            "private": self.private,
            "htmlUrl": self.html_url,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RepositoryInfo:
        return cls(
            name=data["name"],
            default_branch=data.get("defaultBranch", "main"),
            archived=data.get("archived", False),
            fork=data.get("fork", False),
            owning_account_login=data.get("owningAccountLogin", ""),
            full_name=data.get("fullName", ""),
            description=data.get("description", ""),
            private=data.get("private", False),
            html_url=data.get("htmlUrl", ""),
        )


# ── Manifests ────────────────────────────────────────────────


@dataclass
class DeclaredDependency:
    """A requirement or exclusion line from a manifest."""
    path: str
    version: str = ""
    indirect: bool = False


@dataclass
class Replacement:
    """``old [version] => new [version]``; ``new.path`` may be a local directory."""
    old: DeclaredDependency
    new: DeclaredDependency


@dataclass
class ParsedManifest:
    """Structured view of one manifest file."""
    module: str = ""
    tooling_version: str = ""  # "go 1.21", engines.node, requires-python, ...
    version: str = ""
    toolchain: str = ""
    require: list[DeclaredDependency] = field(default_factory=list)
    replace: list[Replacement] = field(default_factory=list)
    exclude: list[DeclaredDependency] = field(default_factory=list)

    def direct_dependencies(self) -> list[DeclaredDependency]:
        return [req for req in self.require if not req.indirect]

    def all_dependencies(self) -> list[DeclaredDependency]:
        return list(self.require)

    def is_replaced(self, path: str) -> bool:
        return any(r.old.path == path for r in self.replace)

    def get_replacement(self, path: str) -> DeclaredDependency | None:
        for r in self.replace:
            if r.old.path == path:
                return r.new
        return None

    @staticmethod
    def is_local_replace(replacement: Replacement) -> bool:
        return replacement.new.path.startswith((".", "/"))

    def has_local_replaces(self) -> bool:
        return any(self.is_local_replace(r) for r in self.replace)


# ── Graph ────────────────────────────────────────────────────


@dataclass
class ModuleRef:
    """Edge annotation: a dependency on ``target_id`` at ``version``."""
    target_id: str
    version: str = ""
    is_managed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "targetId": self.target_id,
            "version": self.version,
            "isManaged": self.is_managed,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ModuleRef:
        return cls(
            target_id=data["targetId"],
            version=data.get("version", ""),
            is_managed=data.get("isManaged", False),
        )


@dataclass
class Module:
    """A uniquely identified unit of dependency management."""
    id: str
    ecosystem: Ecosystem
    name: str
    owning_account: str = ""
    version: str = ""
    is_managed: bool = False
    dependencies: list[ModuleRef] = field(default_factory=list)
    repository: RepositoryInfo | None = None

    def __post_init__(self):
        # Ordered set: keep the first reference to each target.
        seen: set[str] = set()
        unique: list[ModuleRef] = []
        for ref in self.dependencies:
            if ref.target_id in seen:
                continue
            seen.add(ref.target_id)
            unique.append(ref)
        self.dependencies = unique

    def dependency_ids(self) -> list[str]:
        return [ref.target_id for ref in self.dependencies]

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "ecosystem": self.ecosystem.value,
            "name": self.name,
            "owningAccount": self.owning_account,
            "version": self.version,
            "isManaged": self.is_managed,
            "dependencies": [ref.to_dict() for ref in self.dependencies],
        }
        if self.repository is not None:
            data["repository"] = self.repository.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Module:
        repo = data.get("repository")
        return cls(
            id=data["id"],
            ecosystem=Ecosystem.parse(data["ecosystem"]),
            name=data["name"],
            owning_account=data.get("owningAccount", ""),
            version=data.get("version", ""),
            is_managed=data.get("isManaged", False),
            dependencies=[ModuleRef.from_dict(d) for d in data.get("dependencies") or []],
            repository=RepositoryInfo.from_dict(repo) if repo else None,
        )


@dataclass
class Portfolio:
    """The set of hosting accounts considered "ours" for one graph build."""
    name: str = "default"
    accounts: list[str] = field(default_factory=list)
    ecosystems: list[Ecosystem] = field(default_factory=list)  # empty = all
    graph_storage_location: str = ""

    def is_member(self, account: str) -> bool:
        if not account:
            return False
        target = canonical_account(account)
        return any(canonical_account(a) == target for a in self.accounts)

    def wants(self, ecosystem: Ecosystem) -> bool:
        return not self.ecosystems or ecosystem in self.ecosystems

    def requested_ecosystems(self) -> list[Ecosystem]:
        return list(self.ecosystems) if self.ecosystems else list(Ecosystem)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "accounts": list(self.accounts),
            "ecosystems": [e.value for e in self.ecosystems],
            "graphStorageLocation": self.graph_storage_location,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Portfolio:
        return cls(
            name=data.get("name", "default"),
            accounts=list(data.get("accounts") or []),
            ecosystems=[Ecosystem.parse(e) for e in data.get("ecosystems") or []],
            graph_storage_location=data.get("graphStorageLocation", ""),
        )


@dataclass(frozen=True)
class GraphSnapshot:
    """Immutable point-in-time capture of a graph."""
    portfolio: Portfolio
    modules: dict[str, Module]
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(timespec="seconds")
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "portfolio": self.portfolio.to_dict(),
            "timestamp": self.timestamp,
            "modules": {mid: self.modules[mid].to_dict() for mid in sorted(self.modules)},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GraphSnapshot:
        modules = {
            mid: Module.from_dict(m) for mid, m in (data.get("modules") or {}).items()
        }
        return cls(
            portfolio=Portfolio.from_dict(data.get("portfolio") or {}),
            modules=modules,
            timestamp=data.get("timestamp", ""),
        )


@dataclass
class Cycle:
    """Managed modules that could not be placed in the upgrade order."""
    modules: list[str] = field(default_factory=list)


@dataclass
class UpgradeOrder:
    """Topological order of managed modules plus anything left unordered."""
    ordered: list[Module] = field(default_factory=list)
    cycles: list[Cycle] = field(default_factory=list)

    @property
    def unorderable(self) -> list[str]:
        return [mid for cycle in self.cycles for mid in cycle.modules]

    @property
    def has_cycles(self) -> bool:
        return bool(self.cycles)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ordered": [m.to_dict() for m in self.ordered],
            "cycles": [{"modules": list(c.modules)} for c in self.cycles],
        }


@dataclass
class StaleModule:
    """A managed module pinned below ``required`` for ``dependency``."""
    module: Module
    dependency: str
    current: str
    required: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "module": self.module.id,
            "dependency": self.dependency,
            "current": self.current,
            "required": self.required,
        }


@dataclass
class GraphStats:
    total_modules: int = 0
    managed_modules: int = 0
    external_modules: int = 0
    total_edges: int = 0
    by_ecosystem: dict[str, int] = field(default_factory=dict)
    by_account: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalModules": self.total_modules,
            "managedModules": self.managed_modules,
            "externalModules": self.external_modules,
            "totalEdges": self.total_edges,
            "byEcosystem": dict(sorted(self.by_ecosystem.items())),
            "byAccount": dict(sorted(self.by_account.items())),
        }


@dataclass
class ValidationIssue:
    kind: str  # "missing_dependency" | "cycle"
    module: str
    message: str
