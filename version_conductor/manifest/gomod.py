"""go.mod parser: module/go/toolchain directives and require/replace/exclude."""

from __future__ import annotations

from version_conductor.ecosystems import Ecosystem
from version_conductor.manifest.base import BaseManifestParser
from version_conductor.models import DeclaredDependency, ParsedManifest, Replacement

_INDIRECT_MARKER = "// indirect"
_BLOCK_DIRECTIVES = ("require", "replace", "exclude")


class GoModParser(BaseManifestParser):
    """Line-oriented parser for Go module manifests."""

    ecosystem = Ecosystem.GO
    manifest_file = "go.mod"

    def parse(self, content: bytes | str) -> ParsedManifest:
        info = ParsedManifest()
        block: str | None = None

        for raw in self._decode(content).splitlines():
            line = raw.strip()
            if not line or line.startswith("//"):
                continue

            if block is not None:
                if line == ")":
                    block = None
                    continue
                self._add_entry(info, block, line)
                continue

            keyword, _, rest = line.partition(" ")
            rest = rest.strip()

            # require ( / require(
            if keyword.rstrip("(") in _BLOCK_DIRECTIVES and (
                rest == "(" or keyword.endswith("(")
            ):
                block = keyword.rstrip("(")
                continue

            if keyword == "module":
                info.module = _strip_quotes(_strip_comment(rest))
            elif keyword == "go":
                info.tooling_version = _strip_comment(rest)
            elif keyword == "toolchain":
                info.toolchain = _strip_comment(rest)
            elif keyword in _BLOCK_DIRECTIVES:
                self._add_entry(info, keyword, rest)

        return info

    def _add_entry(self, info: ParsedManifest, directive: str, line: str) -> None:
        if directive == "replace":
            replacement = parse_replace(line)
            if replacement is not None:
                info.replace.append(replacement)
            return

        dep = parse_module_version(line)
        if dep is None:
            return
        if directive == "require":
            info.require.append(dep)
        else:
            info.exclude.append(dep)


def parse_module_version(line: str) -> DeclaredDependency | None:
    """``github.com/x/y v1.2.3 // indirect`` -> dependency, or None if malformed."""
    line = line.strip()
    indirect = _INDIRECT_MARKER in line
    parts = _strip_comment(line).split()
    if len(parts) < 2:
        return None
    return DeclaredDependency(
        path=_strip_quotes(parts[0]),
        version=parts[1],
        indirect=indirect,
    )


def parse_replace(line: str) -> Replacement | None:
    """Parse ``old [v] => new [v]``; ``new`` may be a local path."""
    left, sep, right = _strip_comment(line).partition("=>")
    if not sep:
        return None
    old_fields = left.split()
    new_fields = right.split()
    if not old_fields or not new_fields:
        return None
    old = DeclaredDependency(path=_strip_quotes(old_fields[0]))
    if len(old_fields) > 1:
        old.version = old_fields[1]
    new = DeclaredDependency(path=_strip_quotes(new_fields[0]))
    if len(new_fields) > 1:
        new.version = new_fields[1]
    return Replacement(old=old, new=new)


def _strip_comment(text: str) -> str:
    idx = text.find("//")
    if idx >= 0:
        text = text[:idx]
    return text.strip()


def _strip_quotes(text: str) -> str:
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"`":
        return text[1:-1]
    return text
