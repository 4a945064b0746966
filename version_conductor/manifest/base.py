"""Abstract base manifest parser."""

from __future__ import annotations

import abc

from version_conductor.ecosystems import Ecosystem
from version_conductor.errors import ManifestParseError
from version_conductor.models import ParsedManifest


class BaseManifestParser(abc.ABC):
    """Base class for ecosystem-specific manifest parsers.

    Parsers are pure: raw manifest text in, ``ParsedManifest`` out. Oddly
    shaped content is skipped line by line; only content that cannot be read
    at all raises ``ManifestParseError``.
    """

    ecosystem: Ecosystem
    manifest_file: str

    @abc.abstractmethod
    def parse(self, content: bytes | str) -> ParsedManifest:
        """Parse manifest content."""

    @staticmethod
    def _decode(content: bytes | str) -> str:
        if isinstance(content, str):
            return content
        try:
            return content.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ManifestParseError(f"manifest is not valid UTF-8: {e}") from e
