import json
import re
from pathlib import PurePosixPath
from typing import Any, List, Tuple

import yaml

JSON_SUFFIXES = {".json", ".jsonc", ".json5"}
YAML_SUFFIXES = {".yaml", ".yml"}

_TRAILING_COMMA = re.compile(r",(\s*[}\]])")

# Sentinel for pointer lookups that walk off the document.
MISSING = object()


class UnsupportedFormat(ValueError):
    pass


def strip_json_comments(text: str) -> str:
    """
    Remove ``//`` and ``/* */`` comments and trailing commas outside of strings.
    Biome, tsconfig and VS Code style configs are JSON-with-comments.
    """
    out: List[str] = []
    i, n = 0, len(text)
    in_string = False
    while i < n:
        c = text[i]
        if in_string:
            out.append(c)
            if c == "\\" and i + 1 < n:
                out.append(text[i + 1])
                i += 2
                continue
            if c == '"':
                in_string = False
            i += 1
            continue
        if c == '"':
            in_string = True
            out.append(c)
            i += 1
        elif text.startswith("//", i):
            end = text.find("\n", i)
            i = n if end == -1 else end
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = n if end == -1 else end + 2
        else:
            out.append(c)
            i += 1
    return _strip_trailing_commas("".join(out))


def _strip_trailing_commas(text: str) -> str:
    # Only safe after comments are gone; string contents are re-protected below.
    pieces = re.split(r'("(?:\\.|[^"\\])*")', text)
    for idx in range(0, len(pieces), 2):
        pieces[idx] = _TRAILING_COMMA.sub(r"\1", pieces[idx])
    return "".join(pieces)


def document_format(path: str) -> str:
    suffix = PurePosixPath(path).suffix.lower()
    if suffix in JSON_SUFFIXES:
        return "json"
    if suffix in YAML_SUFFIXES:
        return "yaml"
    raise UnsupportedFormat(f"unsupported config format '{suffix or path}'")


def parse_document(path: str, text: str) -> Any:
    """Parse a config file by extension. Raises ValueError on malformed content."""
    fmt = document_format(path)
    if fmt == "json":
        try:
            return json.loads(strip_json_comments(text))
        except json.JSONDecodeError as ex:
            raise ValueError(f"malformed JSON at line {ex.lineno}: {ex.msg}")
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as ex:
        raise ValueError(f"malformed YAML: {ex}")


def parse_pointer(pointer: str) -> Tuple[str, ...]:
    """
    Split an RFC 6901 JSON pointer into unescaped reference tokens.

    >>> parse_pointer("/linter/rules/correctness/noUnusedImports/fix")
    ('linter', 'rules', 'correctness', 'noUnusedImports', 'fix')
    """
    if not isinstance(pointer, str):
        raise ValueError(f"JSON pointer must be a string, got {type(pointer).__name__}")
    if pointer == "":
        return ()
    if not pointer.startswith("/"):
        raise ValueError(f"JSON pointer '{pointer}' must start with '/'")
    if re.search(r"~(?![01])", pointer):
        raise ValueError(f"JSON pointer '{pointer}' has an invalid '~' escape")
    return tuple(tok.replace("~1", "/").replace("~0", "~") for tok in pointer[1:].split("/"))


def resolve_pointer(doc: Any, tokens: Tuple[str, ...]) -> Any:
    """Return the value at ``tokens`` or MISSING."""
    current = doc
    for token in tokens:
        if isinstance(current, dict):
            if token not in current:
                return MISSING
            current = current[token]
        elif isinstance(current, list):
            if not token.isdigit() or (len(token) > 1 and token.startswith("0")):
                return MISSING
            index = int(token)
            if index >= len(current):
                return MISSING
            current = current[index]
        else:
            return MISSING
    return current
