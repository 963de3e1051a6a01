import argparse
from pathlib import Path
from typing import List, Optional, Sequence

from config_audit.reports.renderer import FORMATS

SEVERITY_MIN_CHOICES = ["critical", "important", "niceToHave"]


def _intent_pair(raw: str):
    if "=" not in raw:
        raise argparse.ArgumentTypeError(f"expected key=value, got '{raw}'")
    key, value = raw.split("=", 1)
    if not key.strip():
        raise argparse.ArgumentTypeError(f"empty intent key in '{raw}'")
    return key.strip(), value.strip()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="config-audit",
        description="Config Audit — rule-driven audit of project tooling configuration"
    )
    parser.add_argument("--verbose", action="store_true",
                        help="Enable verbose logging (DEBUG) on stderr")
    parser.add_argument("--log-file", type=Path, default=None,
                        help="Also write the log to this file")

    sub = parser.add_subparsers(dest="command", required=True)

    audit = sub.add_parser("audit", help="Audit one or more project roots")
    audit.add_argument("paths", type=Path, nargs="+",
                       help="Project root(s) to audit")
    audit.add_argument("--domain", dest="domains", action="append", default=None,
                       help="Domain pack name or catalog file (repeatable; default: all bundled packs)")
    audit.add_argument("--format", choices=FORMATS, default="markdown",
                       help="Report format (default: markdown)")
    audit.add_argument("--severity-min", choices=SEVERITY_MIN_CHOICES, default=None,
                       help="Hide findings below this severity")
    state = audit.add_mutually_exclusive_group()
    state.add_argument("--new-project", dest="project_state", action="store_const", const="new",
                       help="Declare the project as freshly created")
    state.add_argument("--existing-project", dest="project_state", action="store_const", const="existing",
                       help="Declare the project as an existing codebase")
    audit.add_argument("--intent", dest="intent", action="append", type=_intent_pair, default=[],
                       metavar="KEY=VALUE", help="Declared intent answer for decision trees (repeatable)")
    audit.add_argument("--profile", type=Path, default=None,
                       help="Audit profile YAML (default: bundled audit_profile.yaml)")
    audit.add_argument("--output", type=Path, default=None,
                       help="Write the rendered report to this file instead of stdout")
    audit.add_argument("--parallel", action="store_true",
                       help="Audit multiple roots in parallel worker processes")

    validate = sub.add_parser("validate", help="Validate catalog files")
    validate.add_argument("catalogs", nargs="+",
                          help="Domain pack names or catalog files")

    sub.add_parser("domains", help="List bundled domain packs")

    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)
