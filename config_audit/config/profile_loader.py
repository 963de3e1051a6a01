import yaml
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Tuple

from config_audit.config.defaults import (
    DEFAULT_EXCLUDE_DIRS,
    DEFAULT_MAX_FILE_BYTES,
    DEFAULT_PROFILE_PATH,
    DEFAULT_READ_WORKERS,
    DEFAULT_SIGNAL_TIMEOUT,
)
from config_audit.utils.logger import get_logger

logger = get_logger()


@dataclass(frozen=True)
class AuditProfile:
    exclude_dirs: Tuple[str, ...] = field(default_factory=lambda: DEFAULT_EXCLUDE_DIRS)
    signal_timeout: float = DEFAULT_SIGNAL_TIMEOUT
    max_file_bytes: int = DEFAULT_MAX_FILE_BYTES
    read_workers: int = DEFAULT_READ_WORKERS


def validate_dir_list(section_name: str, section: Any) -> Tuple[str, ...]:
    if not isinstance(section, list):
        raise ValueError(f"[ProfileLoader] '{section_name}' must be a list, got {type(section).__name__}")

    normalized = []
    for entry in section:
        if not isinstance(entry, str) or not entry.strip():
            raise ValueError(f"[ProfileLoader] Invalid entry in '{section_name}': {entry!r} (must be non-empty str)")
        normalized.append(entry.strip().strip("/"))

    return tuple(dict.fromkeys(normalized))


def validate_positive(key: str, value: Any, kind: type) -> Any:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"[ProfileLoader] '{key}' must be a number, got {value!r}")
    if value <= 0:
        raise ValueError(f"[ProfileLoader] '{key}' must be positive, got {value}")
    return kind(value)


def load_audit_profile(path: Optional[Path] = None) -> AuditProfile:
    path = path or DEFAULT_PROFILE_PATH
    try:
        with path.open("r", encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}

        if not isinstance(config, dict):
            raise ValueError("[ProfileLoader] YAML root must be a dictionary")

        collection = config.get("collection", {})
        if not isinstance(collection, dict):
            raise ValueError("[ProfileLoader] 'collection' must be a dictionary")

        exclude_dirs = validate_dir_list("exclude_dirs", collection.get("exclude_dirs", list(DEFAULT_EXCLUDE_DIRS)))
        extra = validate_dir_list("extra_exclude_dirs", collection.get("extra_exclude_dirs", []))

        profile = AuditProfile(
            exclude_dirs=tuple(dict.fromkeys(exclude_dirs + extra)),
            signal_timeout=validate_positive("signal_timeout", collection.get("signal_timeout", DEFAULT_SIGNAL_TIMEOUT), float),
            max_file_bytes=validate_positive("max_file_bytes", collection.get("max_file_bytes", DEFAULT_MAX_FILE_BYTES), int),
            read_workers=validate_positive("read_workers", collection.get("read_workers", DEFAULT_READ_WORKERS), int),
        )

        logger.info(f"[ProfileLoader] Audit profile loaded from {path}")
        return profile

    except Exception as ex:
        logger.error(f"[ProfileLoader] Failed to load or validate audit profile: {ex}")
        raise
