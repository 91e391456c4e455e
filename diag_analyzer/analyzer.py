"""Analysis entry point: raw log text in, AnalysisResult out.

One synchronous pass: split lines, parse each (repairing where needed),
bucket slow records by operation, then break down the network calls of the
busiest slow operation. Bad lines are dropped, never raised.
"""

import logging

from diag_analyzer.aggregation import (
    NetworkGroupings,
    aggregate_interactions,
    bucket_operations,
    diagnostic_entries,
    high_latency_pairings,
    select_target_operation,
)
from diag_analyzer.config import AnalyzerConfig
from diag_analyzer.lenient_parser import looks_repaired, parse_record
from diag_analyzer.models import AnalysisResult, RawPairing
from diag_analyzer.network import extract_interactions
from diag_analyzer.system_metrics import build_client_config_metrics, build_system_metrics

logger = logging.getLogger(__name__)


def split_lines(file_content: str) -> list[str]:
    """Non-blank lines of the input."""
    return [line for line in file_content.split("\n") if line.strip()]


def parse_lines(lines: list[str]) -> tuple[list[RawPairing], int]:
    """Parse every line; returns the pairings and the repaired-line count."""
    pairings = []
    repaired = 0
    for line in lines:
        outcome = parse_record(line)
        if not outcome.ok:
            continue
        pairings.append(RawPairing(record=outcome.record, raw_text=line.strip()))
        if looks_repaired(line):
            repaired += 1
    return pairings, repaired


def analyze(
    file_content: str,
    latency_threshold_ms: int | None = None,
    config: AnalyzerConfig | None = None,
) -> AnalysisResult:
    """Analyze a newline-delimited diagnostics log.

    latency_threshold_ms defaults to config.latency_threshold_ms (600).
    """
    config = config or AnalyzerConfig()
    threshold = config.latency_threshold_ms if latency_threshold_ms is None else latency_threshold_ms

    lines = split_lines(file_content)
    pairings, repaired = parse_lines(lines)

    slow = high_latency_pairings(pairings, threshold)
    operation_buckets = bucket_operations(slow)
    target = select_target_operation(operation_buckets)

    groupings = NetworkGroupings()
    if target is not None:
        target_pairings = [p for p in pairings if p.record.name == target]
        groupings = aggregate_interactions(extract_interactions(target_pairings), threshold, config)

    logger.info(
        "Analyzed %d lines: %d parsed, %d repaired, %d above %sms, target=%s",
        len(lines), len(pairings), repaired, len(slow), threshold, target,
    )

    return AnalysisResult(
        total_entries=len(lines),
        parsed_entries=len(pairings),
        repaired_entries=repaired,
        high_latency_entries=len(slow),
        target_operation=target,
        high_latency_diagnostics=tuple(diagnostic_entries(slow)),
        operation_buckets=tuple(operation_buckets),
        high_latency_network_interactions=groupings.high_latency_interactions,
        resource_type_groups=groupings.resource_type_groups,
        status_code_groups=groupings.status_code_groups,
        transport_exception_groups=groupings.transport_exception_groups,
        transport_event_groups=groupings.transport_event_groups,
        system_metrics=build_system_metrics(pairings, config),
        client_config_metrics=build_client_config_metrics(pairings, config),
    )
