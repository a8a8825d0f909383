"""Report contracts for flow findings, recommendations and run summaries."""

from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Optional, Tuple
from enum import Enum
from datetime import datetime


class FindingKind(str, Enum):
    """Kind of flow finding. Declaration order is the report sort order."""
    MISSING_PROPERTY = "missing_property"
    NESTED_MISMATCH = "nested_mismatch"
    ORPHAN_HANDLER = "orphan_handler"
    ORPHAN_PRODUCER = "orphan_producer"
    # Infrastructure-level findings
    DISCOVERY_FAILURE = "discovery_failure"
    EXTRACTION_FAILURE = "extraction_failure"
    COMPARISON_FAILURE = "comparison_failure"


KIND_ORDER: Dict[FindingKind, int] = {kind: index for index, kind in enumerate(FindingKind)}

PROPERTY_LEVEL_KINDS = (FindingKind.MISSING_PROPERTY, FindingKind.NESTED_MISMATCH)


class Severity(str, Enum):
    """Severity level of a finding."""
    CRITICAL = "critical"  # property will be undefined at runtime
    ERROR = "error"  # required nested structure is missing
    WARNING = "warning"  # advisory, or the run could not fully check something


class ConfidenceLevel(str, Enum):
    """How far the whole report can be trusted."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    UNKNOWN = "unknown"


class FlowFinding(BaseModel):
    """A single data contract mismatch or run problem."""
    model_config = ConfigDict(frozen=True)

    kind: FindingKind
    event_id: str = Field(..., description="Event id shared at the mismatch point ('*' for run-wide findings)")
    property_path: str = Field(default="", description="Missing property or dotted nested path")
    severity: Severity
    confidence: float = Field(..., ge=0.6, le=1.0, description="Heuristic certainty, advisory only")
    message: str
    suggested_fix: str = ""
    file_path: str = ""
    line_number: int = 0
    producer_function: Optional[str] = None
    handler_name: Optional[str] = None

    def sort_key(self) -> Tuple[str, int, int, str, str, str]:
        """Deterministic ordering independent of extraction completion order."""
        return (
            self.file_path,
            self.line_number,
            KIND_ORDER[self.kind],
            self.event_id,
            self.property_path,
            self.message,
        )


class Recommendation(BaseModel):
    """Grouped, actionable fix advice for one finding kind."""
    model_config = ConfigDict(frozen=True)

    kind: FindingKind
    title: str
    description: str
    code_suggestion: str = ""
    priority: Severity
    count: int = Field(..., ge=1)


class FlowStatistics(BaseModel):
    """Counters describing what a run analysed."""
    model_config = ConfigDict(frozen=True)

    files_scanned: int = 0
    producer_count: int = 0
    transformation_count: int = 0
    special_case_count: int = 0
    consumer_count: int = 0
    nested_consumer_count: int = 0
    matched_pairs: int = 0
    events_analyzed: List[str] = Field(default_factory=list)
    findings_by_kind: Dict[str, int] = Field(default_factory=dict)
    findings_by_severity: Dict[str, int] = Field(default_factory=dict)
    complexity_ratio: Optional[float] = None

    @property
    def total_contracts(self) -> int:
        return self.producer_count + self.transformation_count + self.consumer_count


class FlowReport(BaseModel):
    """Result of validating one module."""
    model_config = ConfigDict(frozen=True)

    module_name: str
    module_path: str
    findings: List[FlowFinding] = Field(default_factory=list)
    recommendations: List[Recommendation] = Field(default_factory=list)
    confidence_level: ConfidenceLevel = ConfidenceLevel.UNKNOWN
    statistics: FlowStatistics = Field(default_factory=FlowStatistics)
    generated_at: datetime = Field(default_factory=datetime.now)

    def count(self, severity: Severity) -> int:
        return sum(1 for f in self.findings if f.severity == severity)

    @property
    def critical_count(self) -> int:
        return self.count(Severity.CRITICAL)

    @property
    def error_count(self) -> int:
        return self.count(Severity.ERROR)

    @property
    def warning_count(self) -> int:
        return self.count(Severity.WARNING)

    def has_violations(self) -> bool:
        """Check if any finding was reported."""
        return bool(self.findings)

    def has_blocking_findings(self) -> bool:
        """Check if there are critical or error findings."""
        return self.critical_count > 0 or self.error_count > 0

    def mean_confidence(self) -> Optional[float]:
        if not self.findings:
            return None
        return round(sum(f.confidence for f in self.findings) / len(self.findings), 4)


class ValidationSummary(BaseModel):
    """Summary of validation results across multiple modules."""
    model_config = ConfigDict(frozen=True)

    total_modules: int = 0
    modules_with_violations: int = 0
    total_findings: int = 0
    critical_findings: int = 0
    error_findings: int = 0
    warning_findings: int = 0
    mean_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    confidence_levels: Dict[str, ConfidenceLevel] = Field(default_factory=dict)


class BatchReport(BaseModel):
    """Reports for several modules plus their aggregate summary."""
    model_config = ConfigDict(frozen=True)

    reports: Dict[str, FlowReport] = Field(default_factory=dict)
    summary: ValidationSummary = Field(default_factory=ValidationSummary)
