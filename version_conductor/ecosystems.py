"""Ecosystem enumeration, manifest lookup table and account naming helpers."""

from __future__ import annotations

import enum

from version_conductor.errors import UnknownEcosystemError


class Ecosystem(enum.Enum):
    GO = "go-modules"
    NODE = "node-packages"
    SWIFT = "swift-packages"
    PYTHON = "python-projects"
    RUST = "rust-crates"

    @classmethod
    def parse(cls, tag: str | Ecosystem) -> Ecosystem:
        """Resolve a tag value or a short alias such as ``go`` or ``npm``."""
        if isinstance(tag, Ecosystem):
            return tag
        key = tag.strip().lower()
        for member in cls:
            if member.value == key:
                return member
        if key in _ALIASES:
            return _ALIASES[key]
        raise UnknownEcosystemError(f"Unknown ecosystem: {tag!r}")


_ALIASES: dict[str, Ecosystem] = {
    "go": Ecosystem.GO,
    "golang": Ecosystem.GO,
    "npm": Ecosystem.NODE,
    "node": Ecosystem.NODE,
    "typescript": Ecosystem.NODE,
    "javascript": Ecosystem.NODE,
    "swift": Ecosystem.SWIFT,
    "python": Ecosystem.PYTHON,
    "pypi": Ecosystem.PYTHON,
    "rust": Ecosystem.RUST,
    "cargo": Ecosystem.RUST,
}

# One manifest file per ecosystem, fetched from the repository root.
MANIFEST_FILES: dict[Ecosystem, str] = {
    Ecosystem.GO: "go.mod",
    Ecosystem.NODE: "package.json",
    Ecosystem.SWIFT: "Package.swift",
    Ecosystem.PYTHON: "pyproject.toml",
    Ecosystem.RUST: "Cargo.toml",
}

DEFAULT_HOST = "github.com"


def manifest_file(ecosystem: Ecosystem) -> str:
    return MANIFEST_FILES[ecosystem]


def canonical_account(account: str) -> str:
    """Normalize an account reference to ``host/owner`` form.

    ``acme``, ``@acme``, ``https://github.com/acme/`` and ``github.com/Acme``
    all become ``github.com/acme``.
    """
    s = account.strip().lower()
    if not s:
        return ""
    for prefix in ("https://", "http://", "git@"):
        if s.startswith(prefix):
            s = s[len(prefix):]
    s = s.replace(":", "/").rstrip("/")
    if s.startswith("@"):
        return f"{DEFAULT_HOST}/{s[1:]}"
    if "/" not in s:
        return f"{DEFAULT_HOST}/{s}"
    parts = s.split("/")
    return f"{parts[0]}/{parts[1]}"


def account_owner(account: str) -> str:
    """``github.com/acme`` -> ``acme``."""
    canonical = canonical_account(account)
    if "/" in canonical:
        return canonical.split("/", 1)[1]
    return canonical


def normalize_package_url(url: str) -> str:
    """``https://github.com/acme/widget.git`` -> ``github.com/acme/widget``."""
    s = url.strip()
    for prefix in ("https://", "http://", "ssh://", "git@"):
        if s.startswith(prefix):
            s = s[len(prefix):]
    # scp-style remotes: github.com:acme/widget
    s = s.replace(":", "/", 1)
    if s.endswith(".git"):
        s = s[:-4]
    return s.rstrip("/").lower()


def extract_account(ecosystem: Ecosystem, name: str) -> str:
    """Derive the publishing account from a module name, or ``""``.

    Go paths and Swift package URLs carry ``host/owner`` as their first two
    segments; scoped npm names carry ``@scope``. Crates and Python projects
    have flat names with no account.
    """
    if ecosystem in (Ecosystem.GO, Ecosystem.SWIFT):
        parts = name.split("/")
        if len(parts) >= 2 and "." in parts[0]:
            return canonical_account(f"{parts[0]}/{parts[1]}")
        return ""
    if ecosystem == Ecosystem.NODE:
        if name.startswith("@") and "/" in name:
            return canonical_account(name[: name.index("/")])
        return ""
    return ""
