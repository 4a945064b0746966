"""CLI smoke tests using click's CliRunner against saved snapshots."""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from version_conductor import __version__
from version_conductor.cache import ModuleCache
from version_conductor.cli import cli
from version_conductor.ecosystems import Ecosystem
from version_conductor.errors import ManifestNotFound
from version_conductor.exporter import to_mermaid
from version_conductor.graph import DependencyGraph
from version_conductor.models import Module, ModuleRef, Portfolio, RepositoryInfo
from version_conductor.snapshot import load_snapshot, save_snapshot


# ── Helpers ───────────────────────────────────────────────────

def _module(name, deps=(), eco=Ecosystem.GO, managed=True, account="github.com/acme"):
    tag = eco.value
    return Module(
        id=f"{tag}:{name}",
        ecosystem=eco,
        name=name,
        owning_account=account,
        version="main",
        is_managed=managed,
        dependencies=[ModuleRef(f"{tag}:{t}", v, True) for t, v in deps],
    )


def _graph(cyclic=False):
    graph = DependencyGraph(Portfolio(name="acme", accounts=["github.com/acme"]))
    graph.add_module(_module("github.com/acme/app", [("github.com/acme/lib", "v1.2.0")]))
    graph.add_module(_module("github.com/acme/lib", [("github.com/acme/base", "v0.1.0")]))
    graph.add_module(_module("github.com/acme/base", [("github.com/acme/app", "v1.0.0")] if cyclic else []))
    graph.add_module(_module("@acme/ui", eco=Ecosystem.NODE))
    graph.add_module(_module("github.com/other/tool", account="github.com/other"))
    return graph


class StaticClient:
    def __init__(self, repos, files):
        self.repos = repos
        self.files = files
        self.list_calls = []

    def list_repositories(self, account):
        self.list_calls.append(account)
        return list(self.repos.get(account, []))

    def fetch_file_content(self, account, repository, path, ref):
        if (account, repository, path) not in self.files:
            raise ManifestNotFound(account, repository, path)
        return self.files[(account, repository, path)]


@pytest.fixture
def snapshot_file(tmp_path):
    return save_snapshot(_graph().snapshot(), tmp_path / "graph.json")


@pytest.fixture
def run(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    runner = CliRunner()

    def invoke(*args):
        return runner.invoke(cli, list(args))
    return invoke


# ── Queries ───────────────────────────────────────────────────

class TestGraphQueries:
    def test_version(self, run):
        result = run("--version")
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_stats_json(self, run, snapshot_file):
        result = run("graph", "stats", "--snapshot", str(snapshot_file), "--format", "json")
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["totalModules"] == 5
        assert data["byEcosystem"] == {"go-modules": 4, "node-packages": 1}

    def test_stats_table(self, run, snapshot_file):
        result = run("graph", "stats", "--snapshot", str(snapshot_file))
        assert result.exit_code == 0
        assert "Modules:  5" in result.output
        assert "github.com/other: 1" in result.output

    def test_order(self, run, snapshot_file):
        result = run("graph", "order", "--snapshot", str(snapshot_file), "--format", "json")
        assert result.exit_code == 0
        ordered = [m["id"] for m in json.loads(result.output)["ordered"]]
        assert ordered.index("go-modules:github.com/acme/base") < ordered.index("go-modules:github.com/acme/lib")
        assert ordered.index("go-modules:github.com/acme/lib") < ordered.index("go-modules:github.com/acme/app")

    def test_order_reports_cycle(self, run, tmp_path):
        path = save_snapshot(_graph(cyclic=True).snapshot(), tmp_path / "cyclic.json")
        result = run("graph", "order", "--snapshot", str(path))
        assert result.exit_code == 0
        assert "Cycle (3 module(s))" in result.output

    def test_dependents_by_name(self, run, snapshot_file):
        result = run("graph", "dependents", "github.com/acme/lib", "--snapshot", str(snapshot_file))
        assert result.exit_code == 0
        assert "go-modules:github.com/acme/app" in result.output

    def test_transitive_dependents(self, run, snapshot_file):
        result = run("graph", "dependents", "go-modules:github.com/acme/base", "--transitive",
                     "--snapshot", str(snapshot_file), "--format", "json")
        ids = [m["id"] for m in json.loads(result.output)]
        assert ids == ["go-modules:github.com/acme/app", "go-modules:github.com/acme/lib"]

    def test_dependencies(self, run, snapshot_file):
        result = run("graph", "dependencies", "go-modules:github.com/acme/app", "--snapshot", str(snapshot_file))
        assert "go-modules:github.com/acme/lib" in result.output
        assert "go-modules:github.com/acme/base" not in result.output

    def test_dependents_unknown_module(self, run, snapshot_file):
        result = run("graph", "dependents", "nothing", "--snapshot", str(snapshot_file))
        assert result.exit_code == 0
        assert "No modules depend on nothing." in result.output

    def test_stale(self, run, snapshot_file):
        result = run("graph", "stale", "github.com/acme/lib", "v1.5.0",
                     "--snapshot", str(snapshot_file), "--format", "json")
        assert json.loads(result.output) == [{
            "module": "go-modules:github.com/acme/app",
            "dependency": "github.com/acme/lib",
            "current": "v1.2.0",
            "required": "v1.5.0",
        }]

    def test_validate(self, run, snapshot_file, tmp_path):
        assert run("graph", "validate", "--snapshot", str(snapshot_file)).exit_code == 0
        cyclic = save_snapshot(_graph(cyclic=True).snapshot(), tmp_path / "cyclic.json")
        result = run("graph", "validate", "--snapshot", str(cyclic))
        assert result.exit_code == 1
        assert "[cycle]" in result.output

    def test_ecosystem_filter(self, run, snapshot_file):
        result = run("graph", "stats", "--snapshot", str(snapshot_file), "-e", "node-packages", "-f", "json")
        assert json.loads(result.output)["totalModules"] == 1

    def test_only_account(self, run, snapshot_file):
        result = run("graph", "stats", "--snapshot", str(snapshot_file), "--only-account", "other", "-f", "json")
        assert json.loads(result.output)["byAccount"] == {"github.com/other": 1}

    def test_requires_a_source(self, run):
        result = run("graph", "stats")
        assert result.exit_code == 2
        assert "--accounts" in result.output

    def test_invalid_snapshot(self, run, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text("[]")
        result = run("graph", "stats", "--snapshot", str(bad))
        assert result.exit_code == 1
        assert "invalid snapshot" in result.output


# ── Export / build ────────────────────────────────────────────

class TestExportAndBuild:
    def test_export_mermaid_stdout(self, run, snapshot_file):
        result = run("graph", "export", "--snapshot", str(snapshot_file), "--format", "mermaid")
        assert result.exit_code == 0
        assert result.output == to_mermaid(_graph())

    def test_export_dot_file(self, run, snapshot_file, tmp_path):
        out = tmp_path / "graph.dot"
        result = run("graph", "export", "--snapshot", str(snapshot_file), "-o", str(out), "--no-cluster")
        assert result.exit_code == 0
        text = out.read_text()
        assert text.startswith("digraph dependencies {")
        assert "subgraph" not in text

    def test_build_persists_snapshot_and_tree(self, run, snapshot_file, tmp_path):
        out = tmp_path / "copy.json"
        tree = tmp_path / "tree"
        result = run("graph", "build", "--snapshot", str(snapshot_file), "-o", str(out), "--tree", str(tree))
        assert result.exit_code == 0, result.output
        assert "5 module(s)" in result.output
        assert set(load_snapshot(out).modules) == set(load_snapshot(snapshot_file).modules)
        assert (tree / "portfolio.json").exists()

    def test_build_from_hosting_service(self, run, tmp_path):
        client = StaticClient(
            {"github.com/acme": [RepositoryInfo(name="core", owning_account_login="acme")]},
            {("github.com/acme", "core", "go.mod"): b"module github.com/acme/core\n"},
        )
        out = tmp_path / "built.json"
        with patch("version_conductor.cli.GitHubClient") as client_cls:
            client_cls.return_value.__enter__.return_value = client
            result = run("graph", "build", "--accounts", "acme", "-e", "go-modules", "--no-cache", "-o", str(out))
        assert result.exit_code == 0, result.output
        assert list(load_snapshot(out).modules) == ["go-modules:github.com/acme/core"]
        assert client.list_calls == ["github.com/acme"]

    def test_build_discovery_failure(self, run):
        class FailingClient:
            def list_repositories(self, account):
                raise ManifestNotFound(account, "", "")

        with patch("version_conductor.cli.GitHubClient") as client_cls:
            client_cls.return_value.__enter__.return_value = FailingClient()
            result = run("graph", "build", "--accounts", "ghost", "--no-cache")
        assert result.exit_code == 1
        assert "failed to list repositories for github.com/ghost" in result.output


# ── Cache ─────────────────────────────────────────────────────

class TestCacheCommands:
    def test_stats_prune_clear(self, run, tmp_path):
        cache_dir = tmp_path / "cache"
        ModuleCache(directory=cache_dir).set("k", b"payload")

        result = run("cache", "--cache-dir", str(cache_dir), "stats", "--format", "json")
        assert result.exit_code == 0
        assert json.loads(result.output)["fileEntries"] == 1

        result = run("cache", "--cache-dir", str(cache_dir), "prune")
        assert "Pruned 0 expired entries." in result.output

        result = run("cache", "--cache-dir", str(cache_dir), "clear")
        assert result.exit_code == 0
        assert ModuleCache(directory=cache_dir).stats().file_entries == 0
