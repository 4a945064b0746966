"""Graph builder: discovers manifests across a portfolio and populates a graph."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from version_conductor.cache import (
    ModuleCache,
    fetch_with_cache,
    graph_cache_key,
    manifest_cache_key,
)
from version_conductor.ecosystems import (
    MANIFEST_FILES,
    Ecosystem,
    canonical_account,
    extract_account,
)
from version_conductor.errors import (
    DiscoveryFailure,
    HostingError,
    ManifestNotFound,
    ManifestParseError,
)
from version_conductor.graph import DependencyGraph
from version_conductor.hosting import HostingClient
from version_conductor.manifest import parse_manifest
from version_conductor.models import (
    GraphSnapshot,
    Module,
    ModuleRef,
    ParsedManifest,
    Portfolio,
    RepositoryInfo,
    new_module_id,
)
from version_conductor.progress import ProgressCallback, ProgressEvent, ProgressEventType
from version_conductor.snapshot import snapshot_from_json, snapshot_to_json

logger = logging.getLogger(__name__)

# Per-repository fetch/parse failures that only drop that repository.
_SKIPPABLE = (ManifestNotFound, ManifestParseError, HostingError)


@dataclass
class DiscoveredManifest:
    """A parsed manifest and where it came from."""
    account: str
    repository: RepositoryInfo
    ecosystem: Ecosystem
    manifest: ParsedManifest
    name: str


class GraphBuilder:
    """Build a dependency graph from the repositories of a portfolio.

    Args:
        client: Hosting-service collaborator.
        cache: Optional cache for manifest contents. Repository listings
            are never cached, so new repositories and listing failures
            surface on every build.
        progress: Optional callback receiving ``ProgressEvent``s.
        max_workers: Repositories of one account fetched concurrently. 1 keeps
            discovery fully sequential.
    """

    def __init__(
        self,
        client: HostingClient,
        cache: ModuleCache | None = None,
        progress: ProgressCallback | None = None,
        max_workers: int = 1,
    ):
        self.client = client
        self.cache = cache
        self.progress = progress
        self.max_workers = max(1, max_workers)

    def build(self, portfolio: Portfolio) -> DependencyGraph:
        """Discover every manifest in the portfolio and return the graph.

        Raises:
            DiscoveryFailure: repositories of an account could not be listed.
        """
        accounts = [canonical_account(a) for a in portfolio.accounts if a.strip()]
        ecosystems = portfolio.requested_ecosystems()
        self._emit(ProgressEventType.START, total=len(accounts))

        discovered: list[DiscoveredManifest] = []
        for index, account in enumerate(accounts, 1):
            repos = self._list_repositories(account)
            self._emit(
                ProgressEventType.ACCOUNT, account=account,
                current=index, total=len(accounts), detail=f"{len(repos)} repos",
            )
            discovered.extend(self._discover_account(account, repos, ecosystems))

        graph = DependencyGraph(portfolio)
        for module in self.create_modules(portfolio, discovered):
            if graph.has_module(module.id):
                logger.warning("module %s declared by more than one repository; keeping the last", module.id)
            graph.add_module(module)
            self._emit(ProgressEventType.MODULE, module=module.id)

        self._emit(ProgressEventType.COMPLETE, total=len(graph))
        return graph

    # ── Discovery ────────────────────────────────────────────

    def _list_repositories(self, account: str) -> list[RepositoryInfo]:
        try:
            repos = self.client.list_repositories(account)
        except Exception as e:
            raise DiscoveryFailure(account, e) from e
        kept = [r for r in repos if not r.archived and not r.fork]
        logger.info("listed %d repositories for %s", len(kept), account)
        return sorted(kept, key=lambda r: r.name)

    def _discover_account(
        self,
        account: str,
        repos: list[RepositoryInfo],
        ecosystems: list[Ecosystem],
    ) -> list[DiscoveredManifest]:
        def scan(item: tuple[int, RepositoryInfo]) -> list[DiscoveredManifest]:
            index, repo = item
            self._emit(
                ProgressEventType.REPOSITORY, account=account, repository=repo.name,
                current=index, total=len(repos),
            )
            found = []
            for ecosystem in ecosystems:
                result = self._discover_one(account, repo, ecosystem)
                if result is not None:
                    found.append(result)
            return found

        items = list(enumerate(repos, 1))
        if self.max_workers == 1 or len(items) <= 1:
            results = [scan(item) for item in items]
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                results = list(pool.map(scan, items))
        return [d for batch in results for d in batch]

    def _discover_one(
        self,
        account: str,
        repo: RepositoryInfo,
        ecosystem: Ecosystem,
    ) -> DiscoveredManifest | None:
        try:
            content = self._fetch_manifest(account, repo, ecosystem)
            manifest = parse_manifest(ecosystem, content)
        except _SKIPPABLE as e:
            self._emit(
                ProgressEventType.SKIP, account=account, repository=repo.name,
                detail=f"{ecosystem.value}: {e}",
            )
            return None

        name = self._module_name(account, repo, ecosystem, manifest)
        if not name:
            self._emit(
                ProgressEventType.SKIP, account=account, repository=repo.name,
                detail=f"{ecosystem.value}: manifest declares no module name",
            )
            return None
        return DiscoveredManifest(
            account=account, repository=repo, ecosystem=ecosystem, manifest=manifest, name=name,
        )

    def _fetch_manifest(self, account: str, repo: RepositoryInfo, ecosystem: Ecosystem) -> bytes:
        path = MANIFEST_FILES[ecosystem]
        key = manifest_cache_key(ecosystem, account, repo.name, repo.default_branch)
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        data = self.client.fetch_file_content(account, repo.name, path, repo.default_branch)
        if self.cache is not None:
            self.cache.set(key, data)
        return data

    @staticmethod
    def _module_name(
        account: str,
        repo: RepositoryInfo,
        ecosystem: Ecosystem,
        manifest: ParsedManifest,
    ) -> str:
        # SwiftPM identifies packages by repository URL, not by Package(name:).
        if ecosystem == Ecosystem.SWIFT:
            return f"{account}/{repo.name}".lower()
        return manifest.module

    # ── Classification ───────────────────────────────────────

    @staticmethod
    def create_modules(
        portfolio: Portfolio,
        discovered: list[DiscoveredManifest],
    ) -> list[Module]:
        """Turn discovered manifests into modules classified against ``portfolio``.

        A module is managed when its owning account is a portfolio member. A
        dependency is managed when the account in its name is a member or,
        for names that carry no account (crates, Python projects, unscoped
        npm packages), when it names a managed module discovered in the same
        build.
        """
        owners: dict[int, str] = {}
        managed_names: set[tuple[Ecosystem, str]] = set()
        for i, item in enumerate(discovered):
            owner = extract_account(item.ecosystem, item.name) or canonical_account(
                item.repository.owning_account_login or item.account
            )
            owners[i] = owner
            if portfolio.is_member(owner):
                managed_names.add((item.ecosystem, item.name))

        order = sorted(
            range(len(discovered)),
            key=lambda i: (discovered[i].ecosystem.value, discovered[i].account, discovered[i].repository.name),
        )
        modules: list[Module] = []
        for i in order:
            item = discovered[i]
            deps: list[ModuleRef] = []
            for req in item.manifest.direct_dependencies():
                dep_account = extract_account(item.ecosystem, req.path)
                if dep_account:
                    dep_managed = portfolio.is_member(dep_account)
                else:
                    dep_managed = (item.ecosystem, req.path) in managed_names
                deps.append(ModuleRef(
                    target_id=new_module_id(item.ecosystem, req.path),
                    version=req.version,
                    is_managed=dep_managed,
                ))

            modules.append(Module(
                id=new_module_id(item.ecosystem, item.name),
                ecosystem=item.ecosystem,
                name=item.name,
                owning_account=owners[i],
                version=item.manifest.version or item.repository.default_branch,
                is_managed=portfolio.is_member(owners[i]),
                dependencies=deps,
                repository=item.repository,
            ))
        return modules

    def _emit(self, kind: ProgressEventType, **fields) -> None:
        if self.progress is not None:
            self.progress(ProgressEvent(type=kind, **fields))


class CachedGraphBuilder:
    """Memoize whole graphs per portfolio as snapshot JSON in a ``ModuleCache``."""

    def __init__(self, builder: GraphBuilder, cache: ModuleCache):
        self.builder = builder
        self.cache = cache

    def build(self, portfolio: Portfolio, refresh: bool = False) -> DependencyGraph:
        if refresh:
            self.invalidate(portfolio)
        snapshot = fetch_with_cache(
            self.cache,
            graph_cache_key(portfolio),
            lambda: self.builder.build(portfolio).snapshot(),
            dumps=snapshot_to_json,
            loads=snapshot_from_json,
        )
        return DependencyGraph.from_snapshot(snapshot)

    def invalidate(self, portfolio: Portfolio) -> None:
        self.cache.delete(graph_cache_key(portfolio))


def build_from_snapshot(snapshot: GraphSnapshot) -> DependencyGraph:
    return DependencyGraph.from_snapshot(snapshot)
