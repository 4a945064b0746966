"""Cargo.toml parser."""

from __future__ import annotations

import tomllib

from version_conductor.ecosystems import Ecosystem
from version_conductor.errors import ManifestParseError
from version_conductor.manifest.base import BaseManifestParser
from version_conductor.models import DeclaredDependency, ParsedManifest, Replacement

_SECTIONS = (
    ("dependencies", False),
    ("dev-dependencies", True),
    ("build-dependencies", True),
)


class CargoParser(BaseManifestParser):
    ecosystem = Ecosystem.RUST
    manifest_file = "Cargo.toml"

    def parse(self, content: bytes | str) -> ParsedManifest:
        try:
            data = tomllib.loads(self._decode(content))
        except tomllib.TOMLDecodeError as e:
            raise ManifestParseError(f"invalid Cargo.toml: {e}") from e

        package = _table(data.get("package"))
        info = ParsedManifest(
            module=_plain(package.get("name")),
            version=_plain(package.get("version")),
            tooling_version=_plain(package.get("rust-version")),
        )

        seen: set[str] = set()
        for section, indirect in _SECTIONS:
            for name, spec in _table(data.get(section)).items():
                if name in seen:
                    continue
                seen.add(name)
                version, path = _dependency_spec(spec)
                crate = (_plain(spec.get("package")) if isinstance(spec, dict) else "") or name
                if path:
                    info.replace.append(Replacement(
                        old=DeclaredDependency(path=crate),
                        new=DeclaredDependency(path=_local(path)),
                    ))
                info.require.append(DeclaredDependency(path=crate, version=version, indirect=indirect))

        # [patch.crates-io] / [patch."https://..."]
        for patches in _table(data.get("patch")).values():
            for name, spec in _table(patches).items():
                version, path = _dependency_spec(spec)
                target = _local(path) if path else ((_plain(spec.get("git")) if isinstance(spec, dict) else "") or name)
                info.replace.append(Replacement(
                    old=DeclaredDependency(path=name),
                    new=DeclaredDependency(path=target, version=version),
                ))

        return info


def _dependency_spec(spec) -> tuple[str, str]:
    """Return ``(version, local_path)`` for a string or table dependency."""
    if isinstance(spec, str):
        return spec, ""
    if isinstance(spec, dict):
        return _plain(spec.get("version")), _plain(spec.get("path"))
    return "", ""


def _table(value) -> dict:
    return value if isinstance(value, dict) else {}


def _local(path: str) -> str:
    return path if path.startswith((".", "/")) else f"./{path}"


def _plain(value) -> str:
    # workspace-inherited fields look like {workspace = true}
    return value if isinstance(value, str) else ""
