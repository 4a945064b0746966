"""package.json parser."""

from __future__ import annotations

import json

from version_conductor.ecosystems import Ecosystem
from version_conductor.errors import ManifestParseError
from version_conductor.manifest.base import BaseManifestParser
from version_conductor.models import DeclaredDependency, ParsedManifest, Replacement

# (section, indirect)
_SECTIONS = (
    ("dependencies", False),
    ("peerDependencies", False),
    ("devDependencies", True),
    ("optionalDependencies", True),
)

_LOCAL_PREFIXES = ("file:", "link:", "portal:")


class NpmParser(BaseManifestParser):
    """Node package manifests. Runtime and peer deps are direct; dev and
    optional deps are treated as indirect."""

    ecosystem = Ecosystem.NODE
    manifest_file = "package.json"

    def parse(self, content: bytes | str) -> ParsedManifest:
        try:
            data = json.loads(self._decode(content))
        except json.JSONDecodeError as e:
            raise ManifestParseError(f"invalid package.json: {e}") from e
        if not isinstance(data, dict):
            raise ManifestParseError("package.json must contain a JSON object")

        engines = data.get("engines")
        info = ParsedManifest(
            module=str(data.get("name") or ""),
            version=str(data.get("version") or ""),
            tooling_version=str(engines.get("node", "")) if isinstance(engines, dict) else "",
        )

        seen: set[str] = set()
        for section, indirect in _SECTIONS:
            deps = data.get(section)
            if not isinstance(deps, dict):
                continue
            for name, spec in deps.items():
                if not isinstance(spec, str) or name in seen:
                    continue
                seen.add(name)
                if spec.startswith(_LOCAL_PREFIXES):
                    path = spec.split(":", 1)[1]
                    info.replace.append(Replacement(
                        old=DeclaredDependency(path=name),
                        new=DeclaredDependency(path=path if path.startswith((".", "/")) else f"./{path}"),
                    ))
                info.require.append(DeclaredDependency(path=name, version=spec, indirect=indirect))

        overrides = data.get("overrides")
        if isinstance(overrides, dict):
            for name, spec in overrides.items():
                if isinstance(spec, str):
                    info.replace.append(Replacement(
                        old=DeclaredDependency(path=name),
                        new=DeclaredDependency(path=name, version=spec),
                    ))

        return info
