from dataclasses import asdict, dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError
from pydantic import ValidationError

from config_audit.config.defaults import SEVERITIES, SEVERITY_RANK, SEVERITY_TITLES, TEMPLATES_DIR
from config_audit.errors import RenderError
from config_audit.reports.models import AuditReport, Finding
from config_audit.reports.schemas import (
    AuditReportModel,
    DecisionRecordModel,
    FindingRecord,
    UnavailableSignalModel,
)

FORMATS = ("markdown", "json")


@dataclass(frozen=True)
class RenderedReport:
    text: str
    records: Tuple[FindingRecord, ...]
    document: AuditReportModel

    def to_json(self, indent: int = 2) -> str:
        try:
            return self.document.model_dump_json(indent=indent)
        except (ValueError, TypeError) as ex:
            raise RenderError(f"cannot serialize report: {ex}") from ex


def to_record(finding: Finding) -> FindingRecord:
    data = finding.to_dict()
    return FindingRecord(
        rule_id=data["rule_id"],
        domain=data["domain"],
        severity=data["severity"],
        status=data["status"],
        title=data["title"],
        message=data["message"],
        remediation=data["remediation"],
        evidence=data["evidence"],
        tags=data["tags"],
        resolved_by=data["resolved_by"],
    )


class ReportRenderer:
    """
    Turns an AuditReport into markdown for people and records for programs.
    Performs no I/O; writing the result is the caller's job.
    """

    def __init__(self, severity_min: Optional[str] = None, template_dir: Optional[Path] = None):
        if severity_min is not None and severity_min not in SEVERITIES:
            raise ValueError(f"unknown severity '{severity_min}'")
        self.severity_min = severity_min
        self.env = Environment(
            loader=FileSystemLoader(str(template_dir or TEMPLATES_DIR)),
            autoescape=False,
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )

    def _visible(self, finding: Finding) -> bool:
        if not finding.is_active:
            return False
        if self.severity_min is None:
            return True
        return finding.severity_rank >= SEVERITY_RANK[self.severity_min]

    def render(self, report: AuditReport) -> RenderedReport:
        try:
            visible = [f for f in report.findings if self._visible(f)]
            resolved = [f for f in report.findings if not f.is_active]
            records = tuple(to_record(f) for f in visible)
            document = AuditReportModel(
                root=report.root,
                generated_at=report.generated_at,
                domains=list(report.domains),
                summary=report.summary,
                decisions=[DecisionRecordModel(**asdict(d)) for d in report.decisions],
                findings=list(records),
                suppressed=[to_record(f) for f in resolved],
                unavailable_signals=[UnavailableSignalModel(key=s.key, reason=s.reason) for s in report.unavailable_signals],
                indeterminate_rules=list(report.indeterminate_rules),
                skipped_rules=list(report.skipped_rules),
            )
            text = self._render_markdown(report, visible, resolved)
        except (TemplateError, ValidationError, TypeError, ValueError) as ex:
            raise RenderError(f"cannot render report: {ex}") from ex
        return RenderedReport(text=text, records=records, document=document)

    def render_as(self, report: AuditReport, fmt: str) -> str:
        if fmt not in FORMATS:
            raise RenderError(f"unknown format '{fmt}' (expected one of {FORMATS})")
        rendered = self.render(report)
        return rendered.to_json() if fmt == "json" else rendered.text

    def _render_markdown(self, report: AuditReport, visible: List[Finding], resolved: List[Finding]) -> str:
        sections = [
            (SEVERITY_TITLES[severity], [f for f in visible if f.severity == severity])
            for severity in SEVERITIES
        ]
        next_steps = [f for f in visible if f.severity != "strength" and f.remediation]
        template = self.env.get_template("report.md.j2")
        return template.render(
            report=report,
            sections=sections,
            next_steps=next_steps,
            resolved=resolved,
            summary=report.summary,
            severity_min=self.severity_min,
            generated_on=report.generated_at.strftime("%Y-%m-%d %H:%M:%S %Z").strip(),
        )
