import re
from typing import Dict, Optional, Tuple

VersionTuple = Tuple[int, ...]

_UNVERSIONED = {"", "*", "x", "latest", "next", "canary", "beta", "alpha", "stable", "lts", "lts/*", "node"}
_NON_REGISTRY_PREFIXES = ("workspace:", "file:", "link:", "git", "http:", "https:", "github:", "portal:", "patch:")
_LEADING_OPERATORS = re.compile(r"^(?:[\^~]|[<>]=?|=|v|go)+", re.IGNORECASE)
_NUMERIC = re.compile(r"^(\d+)(?:\.(\d+|[xX*]))?(?:\.(\d+|[xX*]))?")

DEPENDENCY_SECTIONS = ("dependencies", "devDependencies", "peerDependencies", "optionalDependencies")

_FROM_LINE = re.compile(
    r"^\s*FROM\s+(?:--platform=\S+\s+)?(?P<image>[^\s@:]+(?::\d+(?=/))?(?:/[^\s@:]+)*)(?::(?P<tag>[^\s@]+))?(?:@(?P<digest>\S+))?(?:[ \t]+AS[ \t]+(?P<alias>\S+))?",
    re.IGNORECASE | re.MULTILINE,
)
_GO_DIRECTIVE = re.compile(r"^\s*go\s+(\S+)\s*$", re.MULTILINE)
_TOOLCHAIN_DIRECTIVE = re.compile(r"^\s*toolchain\s+(\S+)\s*$", re.MULTILINE)


def parse_version(raw: Optional[str]) -> Optional[VersionTuple]:
    """
    Reduce a version or range specifier to a comparable tuple of ints.

    Returns None for anything that does not pin a numeric version
    (``latest``, ``*``, ``workspace:*``, git URLs, ...).

    >>> parse_version("^1.9.4")
    (1, 9, 4)
    >>> parse_version("22-slim")
    (22,)
    >>> parse_version("go1.22.3")
    (1, 22, 3)
    """
    if raw is None:
        return None
    text = str(raw).strip().lower()
    if text.startswith("npm:") and "@" in text[4:]:
        text = text.rsplit("@", 1)[1]
    if text in _UNVERSIONED or text.startswith(_NON_REGISTRY_PREFIXES):
        return None

    # First alternative of a range union, first bound of a compound range.
    text = text.split("||")[0].strip()
    text = text.split()[0] if text else text
    text = _LEADING_OPERATORS.sub("", text)

    match = _NUMERIC.match(text)
    if not match:
        return None

    parts = []
    for group in match.groups():
        if group is None or not group.isdigit():
            break
        parts.append(int(group))
    return tuple(parts) or None


def compare_versions(left: VersionTuple, right: VersionTuple) -> int:
    width = max(len(left), len(right))
    a = left + (0,) * (width - len(left))
    b = right + (0,) * (width - len(right))
    return (a > b) - (a < b)


def versions_from_package_json(doc: dict) -> Dict[str, str]:
    versions: Dict[str, str] = {}
    if not isinstance(doc, dict):
        return versions
    for section in DEPENDENCY_SECTIONS:
        deps = doc.get(section)
        if isinstance(deps, dict):
            for name, spec in deps.items():
                if isinstance(spec, str):
                    versions.setdefault(name, spec)
    engines = doc.get("engines")
    if isinstance(engines, dict) and isinstance(engines.get("node"), str):
        versions.setdefault("node", engines["node"])
    return versions


def versions_from_go_mod(text: str) -> Dict[str, str]:
    versions: Dict[str, str] = {}
    go = _GO_DIRECTIVE.search(text)
    if go:
        versions["go"] = go.group(1)
    toolchain = _TOOLCHAIN_DIRECTIVE.search(text)
    if toolchain:
        versions["go-toolchain"] = toolchain.group(1)
    return versions


def versions_from_dockerfile(text: str) -> Dict[str, str]:
    """
    Map ``docker:<image>`` to the tag of its first FROM line (``latest`` when untagged).

    ``FROM <stage>`` lines that name an earlier ``AS <stage>`` build from that
    stage, not from an image, and are left out.
    """
    versions: Dict[str, str] = {}
    stages = set()
    for match in _FROM_LINE.finditer(text):
        image = match.group("image").lower()
        from_stage = image == "scratch" or image in stages
        if match.group("alias"):
            stages.add(match.group("alias").lower())
        if from_stage:
            continue
        tag = match.group("tag") or ("" if match.group("digest") else "latest")
        versions.setdefault(f"docker:{image}", tag)
    return versions


def version_from_node_file(text: str) -> Optional[str]:
    for line in text.splitlines():
        line = line.split("#", 1)[0].strip()
        if line:
            return line
    return None
