"""Flow Orchestrator - central state machine for data contract verification.

The Flow Orchestrator is the main entry point that:
1. Discovers a module's producer, broker and consumer files
2. Extracts contracts from every file in parallel
3. Simulates producer payloads through the broker
4. Compares simulated payloads with consumer requirements
5. Produces a deterministic FlowReport

Public entry points never raise: every failure becomes a finding.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from contracts import (
    BatchReport,
    BrokerTransformation,
    ConfidenceLevel,
    ConsumerContract,
    ContractRole,
    DiscoveryError,
    FindingKind,
    FlowFinding,
    FlowReport,
    FlowStatistics,
    FlowVerificationError,
    ProducerContract,
    Severity,
    ValidationSummary,
)
from extractors import get_extractor
from flow import (
    ConfidenceScorer,
    FlowComparator,
    RecommendationBuilder,
    TransformationSimulator,
    complexity_ratio,
)
from flow.comparator import ComparisonResult
from flow.scoring import INFRASTRUCTURE_CONFIDENCE
from orchestrator.discovery import DiscoveredFiles, ModuleDiscovery
from orchestrator.run_cache import RunCache
from config import Settings, settings as default_settings


logger = logging.getLogger(__name__)


class RunState(str, Enum):
    """Stages of one verification run, in order."""
    IDLE = "idle"
    DISCOVERING = "discovering"
    EXTRACTING = "extracting"
    SIMULATING = "simulating"
    COMPARING = "comparing"
    REPORTING = "reporting"
    DONE = "done"


_TRANSITIONS: Dict[RunState, Sequence[RunState]] = {
    RunState.IDLE: (RunState.DISCOVERING, RunState.REPORTING),
    RunState.DISCOVERING: (RunState.EXTRACTING, RunState.REPORTING),
    RunState.EXTRACTING: (RunState.SIMULATING, RunState.REPORTING),
    RunState.SIMULATING: (RunState.COMPARING, RunState.REPORTING),
    RunState.COMPARING: (RunState.REPORTING,),
    RunState.REPORTING: (RunState.DONE,),
    RunState.DONE: (),
}


@dataclass
class ExtractionResult:
    """Contracts gathered from every discovered file."""
    producers: List[ProducerContract] = field(default_factory=list)
    transformations: List[BrokerTransformation] = field(default_factory=list)
    consumers: List[ConsumerContract] = field(default_factory=list)
    failures: List[FlowFinding] = field(default_factory=list)
    files_scanned: int = 0


class FlowOrchestrator:
    """Runs discovery, extraction, simulation, comparison and reporting.

    Each stage consumes only its predecessor's output and no stage is
    revisited. A failed discovery jumps straight to reporting.
    """

    def __init__(self, config: Optional[Settings] = None, max_workers: Optional[int] = None):
        """Initialize the orchestrator.

        Args:
            config: Settings override, defaults to the global settings
            max_workers: Extraction thread count override
        """
        self.settings = config or default_settings
        self.max_workers = max_workers or self.settings.max_workers
        self.discovery = ModuleDiscovery(self.settings)
        self.scorer = ConfidenceScorer(self.settings)
        self.recommender = RecommendationBuilder(self.settings)

        self.state = RunState.IDLE
        self.history: List[RunState] = [RunState.IDLE]

    def _transition(self, state: RunState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal transition {self.state.value} -> {state.value}")
        logger.info("Stage: %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def validate(
        self,
        module_path: str,
        module_name: Optional[str] = None,
        broker_path: Optional[str] = None,
    ) -> FlowReport:
        """Validate the data flows of one module.

        Args:
            module_path: Module root directory
            module_name: Name used in the report, defaults to the directory name
            broker_path: Explicit broker file

        Returns:
            FlowReport; never raises
        """
        module_name = module_name or Path(module_path).name or str(module_path)
        self.state = RunState.IDLE
        self.history = [RunState.IDLE]

        try:
            return self._run(module_path, module_name, broker_path)
        except Exception as e:
            logger.exception("Verification of %s failed unexpectedly", module_name)
            return self._failure_report(module_name, module_path, e)

    def _run(self, module_path: str, module_name: str, broker_path: Optional[str]) -> FlowReport:
        with RunCache(self.settings.max_file_bytes) as cache:
            # Stage 1: Discovery
            self._transition(RunState.DISCOVERING)
            try:
                files = self.discovery.discover(module_path, broker_path)
            except DiscoveryError as e:
                logger.warning("Discovery failed for %s: %s", module_name, e)
                return self._failure_report(module_name, module_path, e)

            # Stage 2: Extraction
            self._transition(RunState.EXTRACTING)
            extraction = self._extract(files, cache)

            # Stage 3: Simulation
            self._transition(RunState.SIMULATING)
            simulator = TransformationSimulator(extraction.transformations)
            if not simulator.has_broker:
                logger.info("No broker transformations in %s; payloads pass through unchanged", module_name)

            # Stage 4: Comparison
            self._transition(RunState.COMPARING)
            comparator = FlowComparator(simulator, self.scorer, self.recommender)
            comparison = comparator.compare(extraction.producers, extraction.consumers)

            # Stage 5: Reporting
            self._transition(RunState.REPORTING)
            report = self._build_report(module_name, module_path, extraction, comparison)
            self._transition(RunState.DONE)
            return report

    def _extract(self, files: DiscoveredFiles, cache: RunCache) -> ExtractionResult:
        """Extract contracts from every file on a bounded worker pool.

        Results are collected in submission order, so completion order never
        changes the output. The per-file timeout is measured from when collection
        reaches a file, not from when a worker starts it, so a file still
        queued at that point spends part of its budget waiting for a worker.
        A timed out worker thread is abandoned, not killed.
        """
        result = ExtractionResult(files_scanned=len(files.all_files))
        tasks = [
            (path, role)
            for role, paths in files.by_role().items()
            for path in paths
        ]

        executor = ThreadPoolExecutor(max_workers=self.max_workers)
        try:
            futures = [
                (path, role, executor.submit(self._extract_file, cache, path, role))
                for path, role in tasks
            ]
            broker_file: Optional[Path] = None

            for path, role, future in futures:
                try:
                    contracts = future.result(timeout=self.settings.file_read_timeout_seconds)
                except FuturesTimeoutError:
                    future.cancel()
                    logger.warning("Extraction of %s timed out", path)
                    result.failures.append(self._extraction_failure(
                        path, f"Extraction timed out after {self.settings.file_read_timeout_seconds}s",
                    ))
                    continue
                except FlowVerificationError as e:
                    logger.warning("Extraction failed for %s: %s", path, e)
                    result.failures.append(self._extraction_failure(
                        path, str(e), e.line_number,
                    ))
                    continue
                except Exception as e:
                    logger.warning("Unexpected extraction error in %s: %s", path, e)
                    result.failures.append(self._extraction_failure(path, f"{type(e).__name__}: {e}"))
                    continue

                if role == ContractRole.PRODUCER:
                    result.producers.extend(contracts)
                elif role == ContractRole.CONSUMER:
                    result.consumers.extend(contracts)
                elif contracts:
                    if broker_file is None:
                        broker_file = path
                        result.transformations.extend(contracts)
                    else:
                        logger.warning("Ignoring second broker %s; using %s", path, broker_file)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        logger.info(
            "Extracted %d producer(s), %d transformation(s), %d consumer(s) from %d file(s)",
            len(result.producers), len(result.transformations),
            len(result.consumers), result.files_scanned,
        )
        return result

    def _extract_file(self, cache: RunCache, path: Path, role: ContractRole) -> List:
        source = cache.read(path)
        extractor = get_extractor(role, self.settings)
        return cache.contracts(source, role, lambda: extractor.extract(source.text, str(path)))

    def _build_report(
        self,
        module_name: str,
        module_path: str,
        extraction: ExtractionResult,
        comparison: ComparisonResult,
    ) -> FlowReport:
        findings = sorted(
            extraction.failures + comparison.findings,
            key=lambda f: f.sort_key(),
        )
        statistics = self._statistics(extraction, comparison, findings)

        return FlowReport(
            module_name=module_name,
            module_path=str(module_path),
            findings=findings,
            recommendations=self.recommender.build(findings, comparison.orphan_consumers),
            confidence_level=self.scorer.confidence_level(statistics),
            statistics=statistics,
        )

    def _statistics(
        self,
        extraction: ExtractionResult,
        comparison: ComparisonResult,
        findings: List[FlowFinding],
    ) -> FlowStatistics:
        by_kind: Dict[str, int] = {}
        by_severity: Dict[str, int] = {}
        for finding in findings:
            by_kind[finding.kind.value] = by_kind.get(finding.kind.value, 0) + 1
            by_severity[finding.severity.value] = by_severity.get(finding.severity.value, 0) + 1

        statistics = FlowStatistics(
            files_scanned=extraction.files_scanned,
            producer_count=len(extraction.producers),
            transformation_count=len(extraction.transformations),
            special_case_count=sum(1 for t in extraction.transformations if t.is_special_cased),
            consumer_count=len(extraction.consumers),
            nested_consumer_count=sum(1 for c in extraction.consumers if c.nested_properties),
            matched_pairs=comparison.matched_pairs,
            events_analyzed=sorted(comparison.events),
            findings_by_kind=by_kind,
            findings_by_severity=by_severity,
        )
        return statistics.model_copy(update={"complexity_ratio": complexity_ratio(statistics)})

    def _extraction_failure(self, path: Path, message: str, line_number: int = 0) -> FlowFinding:
        return FlowFinding(
            kind=FindingKind.EXTRACTION_FAILURE,
            event_id="*",
            severity=Severity.WARNING,
            confidence=INFRASTRUCTURE_CONFIDENCE,
            message=f"Could not extract contracts from {path.name}: {message}",
            suggested_fix=self.recommender.infrastructure_fix(FindingKind.EXTRACTION_FAILURE, str(path)),
            file_path=str(path),
            line_number=line_number,
        )

    def _failure_report(self, module_name: str, module_path: str, error: Exception) -> FlowReport:
        """Report for a run that could not get past discovery (or crashed)."""
        if self.state != RunState.REPORTING:
            self.state = RunState.REPORTING
            self.history.append(RunState.REPORTING)

        file_path = getattr(error, "file_path", None) or str(module_path)
        finding = FlowFinding(
            kind=FindingKind.DISCOVERY_FAILURE,
            event_id="*",
            severity=Severity.CRITICAL,
            confidence=INFRASTRUCTURE_CONFIDENCE,
            message=str(error) if isinstance(error, FlowVerificationError) else f"{type(error).__name__}: {error}",
            suggested_fix=self.recommender.infrastructure_fix(FindingKind.DISCOVERY_FAILURE, file_path),
            file_path=file_path,
            line_number=getattr(error, "line_number", 0) or 0,
        )
        report = FlowReport(
            module_name=module_name,
            module_path=str(module_path),
            findings=[finding],
            recommendations=self.recommender.build([finding]),
            confidence_level=ConfidenceLevel.UNKNOWN,
            statistics=FlowStatistics(
                findings_by_kind={finding.kind.value: 1},
                findings_by_severity={finding.severity.value: 1},
            ),
        )
        self._transition(RunState.DONE)
        return report

    def validate_all(
        self,
        modules: Dict[str, str],
        broker_path: Optional[str] = None,
    ) -> BatchReport:
        """Validate several modules, each in its own run.

        Args:
            modules: Module name -> module root
            broker_path: Broker file shared by every module

        Returns:
            BatchReport with per-module reports and a summary
        """
        reports: Dict[str, FlowReport] = {}
        for name, path in modules.items():
            reports[name] = self.validate(path, name, broker_path)
        return BatchReport(reports=reports, summary=self.summarize(list(reports.values())))

    def summarize(self, reports: Sequence[FlowReport]) -> ValidationSummary:
        """Aggregate several reports into one summary."""
        means = [r.mean_confidence() for r in reports if r.findings]
        return ValidationSummary(
            total_modules=len(reports),
            modules_with_violations=sum(1 for r in reports if r.has_violations()),
            total_findings=sum(len(r.findings) for r in reports),
            critical_findings=sum(r.critical_count for r in reports),
            error_findings=sum(r.error_count for r in reports),
            warning_findings=sum(r.warning_count for r in reports),
            mean_confidence=round(sum(means) / len(means), 4) if means else 0.0,
            confidence_levels={r.module_name: r.confidence_level for r in reports},
        )


def validate(
    module_path: str,
    module_name: Optional[str] = None,
    broker_path: Optional[str] = None,
    config: Optional[Settings] = None,
) -> FlowReport:
    """Convenience function to validate one module.

    Args:
        module_path: Module root directory
        module_name: Name used in the report
        broker_path: Explicit broker file
        config: Settings override

    Returns:
        FlowReport
    """
    return FlowOrchestrator(config).validate(module_path, module_name, broker_path)


def validate_all(
    modules: Dict[str, str],
    broker_path: Optional[str] = None,
    config: Optional[Settings] = None,
) -> BatchReport:
    """Convenience function to validate several modules."""
    return FlowOrchestrator(config).validate_all(modules, broker_path)
