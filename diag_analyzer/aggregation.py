"""Aggregation pipeline: operation buckets, grouped network interactions,
and percentile-bounded drill-down sets.

Every group is built from a non-empty partition, so statistics never see an
empty sample here. Groups are ordered by member count, descending; ties keep
the order in which their keys were first seen.
"""

from collections import Counter
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from diag_analyzer.config import AnalyzerConfig
from diag_analyzer.models import (
    DiagnosticEntry,
    EndpointCount,
    GroupedBucket,
    GroupedEntry,
    NetworkInteraction,
    OperationBucket,
    PhaseDetail,
    RawPairing,
    TransportEvent,
    TransportEventGroup,
    endpoint_authority,
    grouped_entry_from,
)
from diag_analyzer.percentiles import compute_statistics


@dataclass(frozen=True)
class NetworkGroupings:
    high_latency_interactions: tuple[NetworkInteraction, ...] = ()
    resource_type_groups: tuple[GroupedBucket, ...] = ()
    status_code_groups: tuple[GroupedBucket, ...] = ()
    transport_exception_groups: tuple[GroupedBucket, ...] = ()
    transport_event_groups: tuple[TransportEventGroup, ...] = ()


def partition(items: Iterable, key_fn: Callable[[Any], Any], skip_none: bool = True) -> dict[Any, list]:
    """Group items by key, preserving first-seen key order."""
    groups: dict[Any, list] = {}
    for item in items:
        key = key_fn(item)
        if key is None and skip_none:
            continue
        groups.setdefault(key, []).append(item)
    return groups


def ranked(interactions: Iterable[NetworkInteraction]) -> list[NetworkInteraction]:
    return sorted(interactions, key=lambda i: i.duration_ms, reverse=True)


def entries_in_range(
    interactions: Iterable[NetworkInteraction],
    lower: float | None,
    upper: float,
    limit: int = 50,
) -> list[GroupedEntry]:
    """Entries with lower < duration <= upper (no lower bound when None)."""
    selected = [
        i for i in interactions
        if (lower is None or i.duration_ms > lower) and i.duration_ms <= upper
    ]
    return [grouped_entry_from(i) for i in ranked(selected)[:limit]]


def _bucket_fields(members: list[NetworkInteraction], config: AnalyzerConfig) -> dict[str, Any]:
    stats = compute_statistics(i.duration_ms for i in members)
    limit = config.percentile_entry_limit
    return {
        "stats": stats,
        "entries": tuple(grouped_entry_from(i) for i in ranked(members)[:config.group_entry_limit]),
        "entries_at_p50": tuple(entries_in_range(members, None, stats.p50, limit)),
        "entries_at_p75": tuple(entries_in_range(members, stats.p50, stats.p75, limit)),
        "entries_at_p90": tuple(entries_in_range(members, stats.p75, stats.p90, limit)),
        "entries_at_p95": tuple(entries_in_range(members, stats.p90, stats.p95, limit)),
    }


def _by_count(buckets: list) -> list:
    return sorted(buckets, key=lambda b: b.count, reverse=True)


def group_interactions(
    interactions: Iterable[NetworkInteraction],
    key_fn: Callable[[NetworkInteraction], str | None],
    config: AnalyzerConfig | None = None,
) -> list[GroupedBucket]:
    """Partition interactions by key; interactions whose key is None are skipped."""
    config = config or AnalyzerConfig()
    groups = partition(interactions, key_fn)
    return _by_count([
        GroupedBucket(key=str(key), **_bucket_fields(members, config))
        for key, members in groups.items()
    ])


def phase_details(members: list[NetworkInteraction], config: AnalyzerConfig) -> list[PhaseDetail]:
    """Break a group down by the timeline phase that took longest."""
    details = []
    for phase, items in partition(members, lambda i: i.bottleneck_event_name, skip_none=False).items():
        endpoints = Counter(
            authority
            for authority in (endpoint_authority(i.physical_address) for i in items)
            if authority
        )
        durations = [i.duration_ms for i in items]
        details.append(PhaseDetail(
            phase=phase,
            count=len(items),
            min_duration=min(durations),
            max_duration=max(durations),
            endpoint_count=len(endpoints),
            top_endpoints=tuple(
                EndpointCount(endpoint=endpoint, count=count)
                for endpoint, count in endpoints.most_common(config.top_endpoint_limit)
            ),
            entries=tuple(grouped_entry_from(i) for i in ranked(items)[:config.group_entry_limit]),
        ))
    return details


def group_by_transport_event(
    interactions: Iterable[NetworkInteraction],
    config: AnalyzerConfig | None = None,
) -> list[TransportEventGroup]:
    config = config or AnalyzerConfig()
    groups = partition(interactions, lambda i: i.last_event or TransportEvent.UNKNOWN)
    return _by_count([
        TransportEventGroup(
            key=event.value,
            event=event,
            phase_details=tuple(phase_details(members, config)),
            **_bucket_fields(members, config),
        )
        for event, members in groups.items()
    ])


def aggregate_interactions(
    interactions: Iterable[NetworkInteraction],
    latency_threshold: float,
    config: AnalyzerConfig | None = None,
) -> NetworkGroupings:
    """Filter to slow interactions and build every grouping over them."""
    config = config or AnalyzerConfig()
    slow = ranked(i for i in interactions if i.duration_ms > latency_threshold)
    if not slow:
        return NetworkGroupings()

    return NetworkGroupings(
        high_latency_interactions=tuple(slow[:config.high_latency_interaction_limit]),
        resource_type_groups=tuple(group_interactions(
            slow, lambda i: f"{i.resource_type} -> {i.operation_type}", config
        )),
        status_code_groups=tuple(group_interactions(
            slow, lambda i: f"{i.status_code} -> {i.sub_status_code}", config
        )),
        transport_exception_groups=tuple(group_interactions(
            slow, lambda i: i.transport_exception_message or None, config
        )),
        transport_event_groups=tuple(group_by_transport_event(slow, config)),
    )


# ---------------------------------------------------------------------------
# Record-level aggregation
# ---------------------------------------------------------------------------


def _direct_calls(pairing: RawPairing) -> int:
    summary = pairing.record.summary
    return summary.direct_call_count if summary else 0


def high_latency_pairings(pairings: Iterable[RawPairing], latency_threshold: float) -> list[RawPairing]:
    return [p for p in pairings if p.record.duration_ms > latency_threshold]


def diagnostic_entries(pairings: Iterable[RawPairing]) -> list[DiagnosticEntry]:
    """Drill-down rows for slow records, slowest first."""
    entries = []
    for pairing in pairings:
        record = pairing.record
        summary = record.summary
        entries.append(DiagnosticEntry(
            name=record.name,
            start_time=record.start_time,
            duration_ms=record.duration_ms,
            direct_call_count=summary.direct_call_count if summary else 0,
            gateway_call_count=summary.gateway_call_count if summary else 0,
            total_call_count=summary.total_call_count if summary else 0,
            raw_text=pairing.raw_text,
        ))
    return sorted(entries, key=lambda e: e.duration_ms, reverse=True)


def bucket_operations(pairings: Iterable[RawPairing]) -> list[OperationBucket]:
    """Group records by operation name; unnamed records are skipped."""
    buckets = []
    for name, members in partition(pairings, lambda p: p.record.name).items():
        call_counts = [_direct_calls(p) for p in members]
        buckets.append(OperationBucket(
            operation=name,
            stats=compute_statistics(p.record.duration_ms for p in members),
            min_network_calls=min(call_counts),
            max_network_calls=max(call_counts),
        ))
    return _by_count(buckets)


def select_target_operation(buckets: list[OperationBucket]) -> str | None:
    """The highest-count operation drives the network breakdown."""
    return buckets[0].operation if buckets else None
