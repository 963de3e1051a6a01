from datetime import datetime
from typing import Dict, List

from pydantic import BaseModel, Field, field_validator

from config_audit.config.defaults import SEVERITIES


class FindingRecord(BaseModel):
    rule_id: str
    domain: str
    severity: str
    status: str = "active"
    title: str = ""
    message: str
    remediation: str = ""
    evidence: List[str] = []
    tags: List[str] = []
    resolved_by: str = ""

    @field_validator("severity")
    @classmethod
    def check_severity(cls, v):
        if v not in SEVERITIES:
            raise ValueError(f"unknown severity '{v}'")
        return v

    @field_validator("evidence", mode="before")
    @classmethod
    def normalize_evidence(cls, v):
        if isinstance(v, (tuple, set)):
            v = list(v)
        if not isinstance(v, list):
            return [str(v)]
        return [str(item) for item in v]

    @field_validator("resolved_by", mode="before")
    @classmethod
    def normalize_resolved_by(cls, v):
        return v or ""


class DecisionRecordModel(BaseModel):
    domain: str
    action: str
    path: List[str] = []
    fallbacks: List[str] = []
    skipped: bool = False


class UnavailableSignalModel(BaseModel):
    key: str
    reason: str


class AuditReportModel(BaseModel):
    root: str
    generated_at: datetime
    domains: List[str] = []
    summary: Dict[str, int] = Field(default_factory=dict)
    decisions: List[DecisionRecordModel] = []
    findings: List[FindingRecord] = []
    suppressed: List[FindingRecord] = []
    unavailable_signals: List[UnavailableSignalModel] = []
    indeterminate_rules: List[str] = []
    skipped_rules: List[str] = []
