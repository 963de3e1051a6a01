from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from config_audit.utils.glob_utils import filter_paths


@dataclass(frozen=True)
class SignalEntry:
    """One observed piece of project state, or the reason it could not be observed."""
    key: str
    value: Any = None
    available: bool = True
    reason: str = ""

    @classmethod
    def unavailable(cls, key: str, reason: str) -> "SignalEntry":
        return cls(key=key, value=None, available=False, reason=reason)


@dataclass(frozen=True)
class RegexMatch:
    file: str
    line: int
    start: int
    end: int
    text: str


# rule id (or decision node scope) → leaf key → file → entry whose value is Tuple[RegexMatch, ...]
RegexTable = Dict[str, Dict[str, Dict[str, SignalEntry]]]


@dataclass(frozen=True)
class ProjectSignal:
    """
    Snapshot of the project state a set of rules needs.
    Captured once per audit; nothing here is re-read afterwards.
    """
    root: str
    files: Tuple[str, ...] = ()                          # relative posix paths of referenced files
    unreadable_dirs: Tuple[SignalEntry, ...] = ()
    configs: Dict[str, SignalEntry] = field(default_factory=dict)
    tools: Dict[str, SignalEntry] = field(default_factory=dict)
    regex_matches: RegexTable = field(default_factory=dict)

    def files_matching(self, pattern: str) -> List[str]:
        return filter_paths(self.files, pattern)

    def regex_entries(self, scope: str, leaf_key: str) -> Dict[str, SignalEntry]:
        return self.regex_matches.get(scope, {}).get(leaf_key, {})

    def unavailable(self) -> List[SignalEntry]:
        """Every unavailable entry, deduplicated by key and sorted."""
        seen: Dict[str, SignalEntry] = {}
        entries = list(self.unreadable_dirs) + list(self.configs.values()) + list(self.tools.values())
        for leaves in self.regex_matches.values():
            for per_file in leaves.values():
                entries.extend(per_file.values())
        for entry in entries:
            if not entry.available:
                seen.setdefault(entry.key, entry)
        return [seen[k] for k in sorted(seen)]
