"""Package.swift parser.

Package manifests are Swift source, so this reads only the declarative
``.package(...)`` calls SwiftPM documents and ignores everything else.
"""

from __future__ import annotations

import re

from version_conductor.ecosystems import Ecosystem, normalize_package_url
from version_conductor.manifest.base import BaseManifestParser
from version_conductor.models import DeclaredDependency, ParsedManifest, Replacement

_TOOLS_VERSION = re.compile(r"^//\s*swift-tools-version\s*:\s*(\S+)", re.MULTILINE)
_PACKAGE_NAME = re.compile(r"Package\s*\(\s*name\s*:\s*\"([^\"]+)\"", re.DOTALL)
_PACKAGE_CALL = re.compile(r"\.package\s*\((?P<args>[^()]*(?:\([^()]*\)[^()]*)*)\)", re.DOTALL)
_URL_ARG = re.compile(r"url\s*:\s*\"([^\"]+)\"")
_PATH_ARG = re.compile(r"path\s*:\s*\"([^\"]+)\"")
_NAME_ARG = re.compile(r"name\s*:\s*\"([^\"]+)\"")
# from: "1.2.0" | exact: "1.2.0" | .upToNextMajor(from: "1.2.0") | branch: "main" | revision: "abc"
_VERSION_ARG = re.compile(
    r"(?:from|exact|branch|revision)\s*:\s*\"([^\"]+)\"|\"([^\"]+)\"\s*(?:\.\.<|\.\.\.)"
)


class SwiftPackageParser(BaseManifestParser):
    ecosystem = Ecosystem.SWIFT
    manifest_file = "Package.swift"

    def parse(self, content: bytes | str) -> ParsedManifest:
        text = self._decode(content)
        info = ParsedManifest()

        m = _TOOLS_VERSION.search(text)
        if m:
            info.tooling_version = m.group(1)
        m = _PACKAGE_NAME.search(text)
        if m:
            info.module = m.group(1)

        seen: set[str] = set()
        for call in _PACKAGE_CALL.finditer(_strip_line_comments(text)):
            args = call.group("args")
            url = _URL_ARG.search(args)
            if url:
                name = normalize_package_url(url.group(1))
                if name in seen:
                    continue
                seen.add(name)
                version = _VERSION_ARG.search(args)
                info.require.append(DeclaredDependency(
                    path=name,
                    version=(version.group(1) or version.group(2)) if version else "",
                ))
                continue

            path = _PATH_ARG.search(args)
            if path:
                local = path.group(1)
                named = _NAME_ARG.search(args)
                dep_name = named.group(1) if named else local.rstrip("/").rsplit("/", 1)[-1]
                info.replace.append(Replacement(
                    old=DeclaredDependency(path=dep_name),
                    new=DeclaredDependency(path=local if local.startswith((".", "/")) else f"./{local}"),
                ))

        return info


def _strip_line_comments(text: str) -> str:
    # keep "//" that sits inside a URL string
    return re.sub(r"(?m)^\s*//.*$", "", text)
