"""Manifest parser registry."""

from __future__ import annotations

from version_conductor.ecosystems import Ecosystem
from version_conductor.models import ParsedManifest
from version_conductor.manifest.base import BaseManifestParser
from version_conductor.manifest.cargo import CargoParser
from version_conductor.manifest.gomod import GoModParser
from version_conductor.manifest.npm import NpmParser
from version_conductor.manifest.pyproject import PyprojectParser
from version_conductor.manifest.swift import SwiftPackageParser

_PARSERS: dict[Ecosystem, BaseManifestParser] = {
    Ecosystem.GO: GoModParser(),
    Ecosystem.NODE: NpmParser(),
    Ecosystem.SWIFT: SwiftPackageParser(),
    Ecosystem.PYTHON: PyprojectParser(),
    Ecosystem.RUST: CargoParser(),
}


def get_parser(ecosystem: Ecosystem) -> BaseManifestParser:
    parser = _PARSERS.get(ecosystem)
    if parser is None:
        raise ValueError(f"No manifest parser for ecosystem: {ecosystem}")
    return parser


def parse_manifest(ecosystem: Ecosystem, content: bytes | str) -> ParsedManifest:
    """Parse manifest content with the parser registered for ``ecosystem``."""
    return get_parser(ecosystem).parse(content)


__all__ = [
    "BaseManifestParser",
    "CargoParser",
    "GoModParser",
    "NpmParser",
    "PyprojectParser",
    "SwiftPackageParser",
    "get_parser",
    "parse_manifest",
]
