from typing import Optional


class AuditError(Exception):
    """Base class for every error raised by the audit engine."""


class CatalogError(AuditError):
    """A catalog document is malformed. Fails the run before collection starts."""

    def __init__(self, message: str, source: Optional[str] = None):
        self.source = source
        prefix = f"{source}: " if source else ""
        super().__init__(f"{prefix}{message}")


class RuleDefinitionError(CatalogError):
    """A single rule (or decision tree node) in a catalog is invalid."""

    def __init__(self, rule_id: str, message: str, source: Optional[str] = None):
        self.rule_id = rule_id
        super().__init__(f"rule '{rule_id}': {message}", source=source)


class CollectionError(AuditError, IOError):
    """
    Raised by the collector when the audit root itself cannot be read.
    Per-file failures never raise; they are recorded as unavailable signals.
    """

    def __init__(self, root, message: str):
        self.root = root
        super().__init__(f"cannot read audit root '{root}': {message}")


class EvaluationError(AuditError):
    """Unexpected failure while evaluating a rule. Logged as a defect, never fatal."""

    def __init__(self, rule_id: str, cause: Exception):
        self.rule_id = rule_id
        self.cause = cause
        super().__init__(f"rule '{rule_id}' failed to evaluate: {type(cause).__name__}: {cause}")


class RenderError(AuditError):
    """The report could not be serialized."""


class AuditCancelled(AuditError):
    """The audit was cancelled between two pipeline stages."""

    def __init__(self, stage: str):
        self.stage = stage
        super().__init__(f"audit cancelled before stage '{stage}'")
