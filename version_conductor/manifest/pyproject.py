"""pyproject.toml parser (PEP 621 with a Poetry fallback)."""

from __future__ import annotations

import tomllib

from packaging.requirements import InvalidRequirement, Requirement
from packaging.utils import canonicalize_name

from version_conductor.ecosystems import Ecosystem
from version_conductor.errors import ManifestParseError
from version_conductor.manifest.base import BaseManifestParser
from version_conductor.models import DeclaredDependency, ParsedManifest, Replacement


def canonical_project_name(name: str) -> str:
    """PEP 503 normalization: ``Foo_Bar`` -> ``foo-bar``."""
    return str(canonicalize_name(name))


def parse_requirement(text: str) -> tuple[str, str, str] | None:
    """``"requests[socks]>=2.31; python_version>'3.8'"`` -> ``("requests", ">=2.31", "")``.

    Returns ``(name, specifier, url)`` or None for an unreadable string.
    """
    try:
        req = Requirement(text)
    except InvalidRequirement:
        return None
    return canonical_project_name(req.name), str(req.specifier), req.url or ""


class PyprojectParser(BaseManifestParser):
    ecosystem = Ecosystem.PYTHON
    manifest_file = "pyproject.toml"

    def parse(self, content: bytes | str) -> ParsedManifest:
        try:
            data = tomllib.loads(self._decode(content))
        except tomllib.TOMLDecodeError as e:
            raise ManifestParseError(f"invalid pyproject.toml: {e}") from e

        project = data.get("project")
        if isinstance(project, dict):
            return self._parse_pep621(project)
        poetry = _table(data.get("tool")).get("poetry")
        if isinstance(poetry, dict):
            return self._parse_poetry(poetry)
        return ParsedManifest()

    def _parse_pep621(self, project: dict) -> ParsedManifest:
        info = ParsedManifest(
            module=canonical_project_name(_text(project.get("name"))),
            version=_text(project.get("version")),
            tooling_version=_text(project.get("requires-python")),
        )
        seen: set[str] = set()
        for req in _array(project.get("dependencies")):
            self._add_requirement(info, req, indirect=False, seen=seen)
        for group in _table(project.get("optional-dependencies")).values():
            for req in _array(group):
                self._add_requirement(info, req, indirect=True, seen=seen)
        return info

    def _parse_poetry(self, poetry: dict) -> ParsedManifest:
        deps = _table(poetry.get("dependencies"))
        info = ParsedManifest(
            module=canonical_project_name(_text(poetry.get("name"))),
            version=_text(poetry.get("version")),
            tooling_version=_text(deps.get("python")),
        )
        groups = [(deps, False), (_table(poetry.get("dev-dependencies")), True)]
        for group in _table(poetry.get("group")).values():
            groups.append((_table(_table(group).get("dependencies")), True))

        seen: set[str] = set()
        for table, indirect in groups:
            for name, spec in table.items():
                if name.lower() == "python":
                    continue
                canonical = canonical_project_name(name)
                if canonical in seen:
                    continue
                seen.add(canonical)
                version = _text(spec)
                if isinstance(spec, dict):
                    version = _text(spec.get("version"))
                    path = _text(spec.get("path"))
                    if path:
                        info.replace.append(Replacement(
                            old=DeclaredDependency(path=canonical),
                            new=DeclaredDependency(path=path),
                        ))
                info.require.append(DeclaredDependency(path=canonical, version=version, indirect=indirect))
        return info

    @staticmethod
    def _add_requirement(info: ParsedManifest, req, *, indirect: bool, seen: set[str]) -> None:
        if not isinstance(req, str):
            return
        parsed = parse_requirement(req)
        if parsed is None:
            return
        name, spec, url = parsed
        if name in seen:
            return
        seen.add(name)
        if url:
            local = url[len("file://"):] if url.startswith("file://") else ""
            info.replace.append(Replacement(
                old=DeclaredDependency(path=name),
                new=DeclaredDependency(path=local or url),
            ))
        info.require.append(DeclaredDependency(path=name, version=spec, indirect=indirect))


# TOML values arrive with whatever shape the author wrote; anything
# other than the expected type reads as empty.

def _table(value) -> dict:
    return value if isinstance(value, dict) else {}


def _array(value) -> list:
    return value if isinstance(value, list) else []


def _text(value) -> str:
    return value if isinstance(value, str) else ""
