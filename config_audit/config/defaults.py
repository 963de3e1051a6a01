from pathlib import Path

# ─── Directory Structure ─────────────────────────────────────
BASE_DIR = Path(__file__).resolve().parent.parent         # → config_audit/
RULES_DIR = BASE_DIR / "rules"                            # → config_audit/rules
CONFIG_DIR = BASE_DIR / "config"                          # → config_audit/config
CATALOGS_DIR = RULES_DIR / "rule_configs"                 # → config_audit/rules/rule_configs
TEMPLATES_DIR = BASE_DIR / "reports" / "templates"

# ─── Default File Paths ─────────────────────────────────────
DEFAULT_PROFILE_PATH = CONFIG_DIR / "audit_profile.yaml"

# ─── Collection Defaults ────────────────────────────────────
# Used when the profile file omits a key.
DEFAULT_EXCLUDE_DIRS = (
    ".git",
    ".hg",
    ".svn",
    "node_modules",
    ".pnpm-store",
    ".yarn",
    "dist",
    "build",
    "out",
    ".next",
    ".turbo",
    ".vercel",
    "coverage",
    "vendor",
    "target",
    "__pycache__",
    ".venv",
)
DEFAULT_SIGNAL_TIMEOUT = 5.0          # seconds per file read
DEFAULT_MAX_FILE_BYTES = 2_000_000
DEFAULT_READ_WORKERS = 4

# ─── Severity Ordering ──────────────────────────────────────
SEVERITIES = ("critical", "important", "niceToHave", "strength")
SEVERITY_RANK = {name: rank for rank, name in enumerate(reversed(SEVERITIES))}   # strength=0 … critical=3
SEVERITY_TITLES = {
    "critical": "Critical",
    "important": "Important",
    "niceToHave": "Nice-to-have",
    "strength": "Strengths",
}


def get_catalog_path(domain: str) -> Path:
    return CATALOGS_DIR / f"{domain}.yaml"


def bundled_domains() -> list:
    return sorted(p.stem for p in CATALOGS_DIR.glob("*.yaml"))
