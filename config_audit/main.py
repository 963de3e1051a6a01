import sys
from pathlib import Path
from typing import Any, Optional, Sequence

import yaml

from config_audit.cli.cli import parse_args
from config_audit.config.defaults import bundled_domains
from config_audit.config.profile_loader import load_audit_profile
from config_audit.core.batch_runner import AuditBatchRunner
from config_audit.decision.tree import AuditIntent
from config_audit.errors import CatalogError, CollectionError, RenderError
from config_audit.reports.renderer import ReportRenderer
from config_audit.rules.rule_loader import load_catalog_from_yaml, load_domain_packs, resolve_catalog_path
from config_audit.utils.logger import init_logging

EXIT_OK = 0
EXIT_CRITICAL = 1
EXIT_COLLECTION_ERROR = 2
EXIT_CATALOG_ERROR = 3


def configure_logging(verbose: bool, log_file: Optional[Path]):
    logger = init_logging(verbose=verbose, log_path=log_file)
    logger.debug("[✓] Logger initialized.")
    return logger


def _intent_value(raw: str) -> Any:
    # "true", "3" and "null" become typed; anything YAML cannot read stays a string
    try:
        return yaml.safe_load(raw) if raw else raw
    except yaml.YAMLError:
        return raw


def build_intent(args, domains: Sequence[str]) -> AuditIntent:
    answers = {key: _intent_value(value) for key, value in args.intent}
    return AuditIntent(
        project_state=args.project_state,
        requested_domains=tuple(domains),
        answers=answers,
    )


def run_audit_command(args, logger) -> int:
    names = args.domains or bundled_domains()
    try:
        packs = load_domain_packs(names)
        profile = load_audit_profile(args.profile)
    except (CatalogError, ValueError, OSError, yaml.YAMLError) as ex:
        print(f"[ERROR] {ex}", file=sys.stderr)
        return EXIT_CATALOG_ERROR

    intent = build_intent(args, [c.domain for c in packs])
    runner = AuditBatchRunner(args.paths, packs, intent=intent, profile=profile, parallel=args.parallel)
    results = runner.run()

    failed = [r for r in results if not r.ok]
    for result in failed:
        print(f"[ERROR] {result.error}", file=sys.stderr)

    renderer = ReportRenderer(severity_min=args.severity_min)
    try:
        rendered = [renderer.render(r.report) for r in results if r.ok]
    except RenderError as ex:
        print(f"[ERROR] {ex}", file=sys.stderr)
        return EXIT_CATALOG_ERROR

    if rendered:
        if args.format == "json":
            body = rendered[0].to_json() if len(rendered) == 1 else "[\n" + ",\n".join(r.to_json() for r in rendered) + "\n]"
        else:
            body = "\n---\n\n".join(r.text for r in rendered)
        if args.output:
            args.output.parent.mkdir(parents=True, exist_ok=True)
            args.output.write_text(body + "\n", encoding="utf-8")
            logger.info(f"[✓] Report written to {args.output.resolve()}")
        else:
            sys.stdout.write(body + ("" if body.endswith("\n") else "\n"))

    if failed:
        return EXIT_COLLECTION_ERROR
    if any(r.report.has_critical for r in results):
        return EXIT_CRITICAL
    return EXIT_OK


def run_validate_command(args) -> int:
    status = EXIT_OK
    for name in args.catalogs:
        try:
            catalog = load_catalog_from_yaml(resolve_catalog_path(name))
            tree = "with decision tree" if catalog.decision_tree else "no decision tree"
            print(f"[✓] {catalog.source}: domain '{catalog.domain}', {len(catalog)} rules, {tree}")
        except CatalogError as ex:
            print(f"[✗] {ex}", file=sys.stderr)
            status = EXIT_CATALOG_ERROR
    return status


def run_domains_command() -> int:
    for domain in bundled_domains():
        print(domain)
    return EXIT_OK


def run(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    logger = configure_logging(args.verbose, args.log_file)

    if args.command == "audit":
        return run_audit_command(args, logger)
    if args.command == "validate":
        return run_validate_command(args)
    return run_domains_command()


def main():
    """
    Main entry point for the config-audit command.
    Exit codes: 0 no critical findings, 1 critical findings, 2 unreadable
    project root, 3 catalog or render error.
    """
    try:
        sys.exit(run())
    except CollectionError as ex:
        print(f"[ERROR] {ex}", file=sys.stderr)
        sys.exit(EXIT_COLLECTION_ERROR)
    except CatalogError as ex:
        print(f"[ERROR] {ex}", file=sys.stderr)
        sys.exit(EXIT_CATALOG_ERROR)


if __name__ == "__main__":
    main()
