import re
from functools import lru_cache
from typing import Iterable, List


def normalize_path(path: str) -> str:
    norm = path.replace("\\", "/")
    while norm.startswith("./"):
        norm = norm[2:]
    return norm.lstrip("/")


@lru_cache(maxsize=1024)
def compile_glob(pattern: str) -> "re.Pattern[str]":
    """
    Translate a glob into an anchored regex over posix relative paths.

    ``*`` and ``?`` never cross a ``/``; ``**/`` matches zero or more
    directories and a trailing ``**`` matches everything below.
    ``{a,b}`` alternation is supported (no nesting).
    """
    pat = normalize_path(pattern)
    parts: List[str] = []
    i = 0
    while i < len(pat):
        c = pat[i]
        if c == "*":
            if i + 1 < len(pat) and pat[i + 1] == "*":
                if i + 2 < len(pat) and pat[i + 2] == "/":
                    parts.append("(?:.+/)?")
                    i += 3
                    continue
                parts.append(".*")
                i += 2
                continue
            parts.append("[^/]*")
        elif c == "?":
            parts.append("[^/]")
        elif c == "{":
            end = pat.find("}", i)
            if end == -1:
                parts.append(re.escape(c))
            else:
                options = pat[i + 1:end].split(",")
                parts.append("(?:" + "|".join(re.escape(o) for o in options) + ")")
                i = end
        elif c == "[":
            end = pat.find("]", i)
            if end == -1:
                parts.append(re.escape(c))
            else:
                body = pat[i + 1:end]
                if body.startswith("!"):
                    body = "^" + body[1:]
                parts.append(f"[{body}]")
                i = end
        else:
            parts.append(re.escape(c))
        i += 1
    return re.compile("^" + "".join(parts) + "$")


def matches_glob(path: str, pattern: str) -> bool:
    return compile_glob(pattern).match(normalize_path(path)) is not None


def matches_any(path: str, patterns: Iterable[str]) -> bool:
    return any(matches_glob(path, p) for p in patterns)


def filter_paths(paths: Iterable[str], pattern: str) -> List[str]:
    """Return the paths matching ``pattern``, sorted for deterministic output."""
    return sorted(p for p in paths if matches_glob(p, pattern))


def validate_glob(pattern: str) -> None:
    """Raise ValueError when ``pattern`` cannot be used as a relative glob."""
    if not isinstance(pattern, str) or not pattern.strip():
        raise ValueError("glob pattern must be a non-empty string")
    if ".." in normalize_path(pattern).split("/"):
        raise ValueError(f"glob '{pattern}' escapes the project root")
    try:
        compile_glob(pattern)
    except re.error as ex:
        raise ValueError(f"invalid glob '{pattern}': {ex}")
