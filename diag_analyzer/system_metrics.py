"""Time plots of host system samples and client configuration snapshots."""

from typing import Iterable

from diag_analyzer.config import AnalyzerConfig
from diag_analyzer.models import (
    ClientConfigSnapshot,
    ClientConfigTimePlot,
    RawPairing,
    SystemMetricsTimePlot,
    SystemSample,
    parse_timestamp,
)
from diag_analyzer.percentiles import compute_statistics
from diag_analyzer.tree import flatten

SHORT_MACHINE_ID_LENGTH = 8


def collect_system_samples(pairings: Iterable[RawPairing]) -> list[SystemSample]:
    """Every dated sample from every node, one per timestamp, oldest first."""
    by_time: dict = {}
    for pairing in pairings:
        for node in flatten(pairing.record):
            for sample in node.system_history:
                if sample.date_utc is not None and sample.date_utc not in by_time:
                    by_time[sample.date_utc] = sample
    return [by_time[ts] for ts in sorted(by_time)]


def build_system_metrics(
    pairings: Iterable[RawPairing],
    config: AnalyzerConfig | None = None,
) -> SystemMetricsTimePlot | None:
    config = config or AnalyzerConfig()
    samples = collect_system_samples(pairings)
    if not samples:
        return None

    return SystemMetricsTimePlot(
        sample_count=len(samples),
        start_time=samples[0].date_utc,
        end_time=samples[-1].date_utc,
        cpu=compute_statistics((s.cpu for s in samples), include_avg=True),
        memory=compute_statistics((s.memory for s in samples), include_avg=True),
        thread_wait_interval_ms=compute_statistics(
            (s.thread_wait_interval_ms for s in samples), include_avg=True
        ),
        open_tcp_connections=compute_statistics(
            (s.open_tcp_connections for s in samples), include_avg=True
        ),
        snapshots=tuple(samples[:config.system_snapshot_limit]),
    )


def collect_client_snapshots(pairings: Iterable[RawPairing]) -> list[ClientConfigSnapshot]:
    """One snapshot per record carrying a client configuration, oldest first.

    Records whose start time cannot be parsed are left out.
    """
    snapshots = []
    for pairing in pairings:
        record = pairing.record
        client = record.client_configuration
        if client is None:
            continue
        date_utc = parse_timestamp(record.start_datetime) or parse_timestamp(record.start_time)
        if date_utc is None:
            continue

        machine_id = client.machine_id or "unknown"
        snapshots.append(ClientConfigSnapshot(
            date_utc=date_utc,
            machine_id=machine_id,
            short_machine_id=machine_id[-SHORT_MACHINE_ID_LENGTH:],
            processor_count=client.processor_count,
            clients_created=client.clients_created,
            active_clients=client.active_clients,
            connection_mode=client.connection_mode,
        ))
    return sorted(snapshots, key=lambda s: s.date_utc)


def build_client_config_metrics(
    pairings: Iterable[RawPairing],
    config: AnalyzerConfig | None = None,
) -> ClientConfigTimePlot | None:
    config = config or AnalyzerConfig()
    snapshots = collect_client_snapshots(pairings)
    if not snapshots:
        return None

    return ClientConfigTimePlot(
        sample_count=len(snapshots),
        start_time=snapshots[0].date_utc,
        end_time=snapshots[-1].date_utc,
        unique_machine_ids=tuple(dict.fromkeys(s.machine_id for s in snapshots)),
        processor_count=compute_statistics((s.processor_count for s in snapshots), include_avg=True),
        clients_created=compute_statistics((s.clients_created for s in snapshots), include_avg=True),
        active_clients=compute_statistics((s.active_clients for s in snapshots), include_avg=True),
        snapshots=tuple(snapshots[:config.client_config_snapshot_limit]),
    )
