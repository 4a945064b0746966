"""Tests for settings and portfolio file loading."""

import pytest

from version_conductor.config import PortfolioFile, Settings, expand_accounts, load_portfolio
from version_conductor.ecosystems import Ecosystem
from version_conductor.errors import ConfigError


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        settings = Settings()
        assert settings.cache_ttl == 3600.0
        assert settings.workers == 1
        assert settings.token == ""

    def test_token_from_environment(self, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "from-env")
        assert Settings().token == "from-env"
        assert Settings(token="explicit").token == "explicit"

    def test_from_dict_ignores_unknown_keys(self):
        settings = Settings.from_dict({"workers": 4, "cache_ttl": 60, "colour": "blue"})
        assert settings.workers == 4
        assert settings.cache_ttl == 60

    def test_save_and_load(self, tmp_path, monkeypatch):
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        path = tmp_path / "config.yaml"
        Settings(workers=8, cache_dir=str(tmp_path / "cache"), token="secret").save(path)
        assert "secret" not in path.read_text()

        loaded = Settings.load(path)
        assert loaded.workers == 8
        assert loaded.cache_dir == str(tmp_path / "cache")
        assert loaded.token == ""

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigError):
            Settings.load(tmp_path / "absent.yaml")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert Settings.load(path).workers == 1

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigError):
            Settings.load(path)


class TestPortfolioFile:
    def test_load_yaml(self, tmp_path):
        path = tmp_path / "portfolio.yaml"
        path.write_text(
            "name: platform\n"
            "accounts:\n  - acme\n  - github.com/Partner\n"
            "ecosystems: [go, npm]\n"
            "graph_storage_location: github.com/acme/graph\n"
        )
        portfolio = load_portfolio(path)
        assert portfolio.name == "platform"
        assert portfolio.accounts == ["github.com/acme", "github.com/partner"]
        assert portfolio.ecosystems == [Ecosystem.GO, Ecosystem.NODE]
        assert portfolio.graph_storage_location == "github.com/acme/graph"

    def test_legacy_keys(self, tmp_path):
        path = tmp_path / "portfolio.yaml"
        path.write_text("orgs: [github.com/acme]\nlanguages: [go]\ngraph_repo: github.com/acme/graph\n")
        portfolio = load_portfolio(path)
        assert portfolio.accounts == ["github.com/acme"]
        assert portfolio.ecosystems == [Ecosystem.GO]
        assert portfolio.graph_storage_location == "github.com/acme/graph"

    def test_json_is_accepted(self, tmp_path):
        path = tmp_path / "portfolio.json"
        path.write_text('{"name": "p", "accounts": ["acme"]}')
        assert load_portfolio(path).accounts == ["github.com/acme"]

    def test_unknown_ecosystem(self, tmp_path):
        path = tmp_path / "portfolio.yaml"
        path.write_text("accounts: [acme]\necosystems: [cobol]\n")
        with pytest.raises(ConfigError, match="cobol"):
            load_portfolio(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_portfolio(tmp_path / "absent.yaml")

    def test_model_defaults(self):
        model = PortfolioFile()
        assert model.name == "default"
        assert model.to_portfolio().accounts == []


class TestExpandAccounts:
    def test_expand(self):
        assert expand_accounts(["acme", "github.com/Other,@third", "ACME", " "]) == [
            "github.com/acme",
            "github.com/other",
            "github.com/third",
        ]
