"""Network interaction extractor: one flat record per backend store call."""

import re
from typing import Iterable

from diag_analyzer.models import (
    NetworkInteraction,
    RawPairing,
    StoreResponseStatistic,
    TransportTimeline,
)
from diag_analyzer.tree import flatten

ERROR_CODE_RE = re.compile(r"error code:\s*(\w+(?:\s*\[0x[0-9A-Fa-f]+\])?)", re.IGNORECASE)
_TIME_MARKER_RE = re.compile(r"\(time:", re.IGNORECASE)


def parse_transport_exception(exception: str | None) -> tuple[str | None, str | None]:
    """Split transport exception text into (message, error code).

    The message is everything before the '(Time:' marker, or the whole
    text when there is no marker. The error code is the first
    'error code: <word> [0x..]' match.
    """
    if not exception:
        return None, None

    message = exception
    marker = _TIME_MARKER_RE.search(exception)
    if marker and marker.start() > 0:
        message = exception[:marker.start()].strip()

    match = ERROR_CODE_RE.search(exception)
    error_code = match.group(1) if match else None
    return message, error_code


def interaction_from(statistic: StoreResponseStatistic, raw_text: str) -> NetworkInteraction | None:
    """Build an interaction, or None when the call never reached a store."""
    store = statistic.store_result
    if store is None or store.physical_address is None:
        return None

    timeline = store.timeline or TransportTimeline()
    bottleneck = timeline.bottleneck_event()
    message, error_code = parse_transport_exception(store.transport_exception)

    return NetworkInteraction(
        duration_ms=statistic.duration_ms,
        physical_address=store.physical_address,
        resource_type=statistic.resource_type,
        operation_type=statistic.operation_type,
        status_code=store.status_code,
        sub_status_code=store.sub_status_code,
        created=timeline.event_duration("Created"),
        channel_acquisition_started=timeline.event_duration("ChannelAcquisitionStarted"),
        pipelined=timeline.event_duration("Pipelined"),
        transit_time=timeline.event_duration("Transit Time"),
        received=timeline.event_duration("Received"),
        completed=timeline.event_duration("Completed"),
        backend_latency_ms=store.backend_latency_ms,
        inflight_requests=timeline.inflight_requests,
        open_connections=timeline.open_connections,
        calls_pending_receive=timeline.calls_pending_receive,
        wait_for_connection_init=timeline.wait_for_connection_init,
        last_event=timeline.last_event() if store.timeline else None,
        bottleneck_event_name=bottleneck.name if bottleneck else None,
        bottleneck_event_duration=bottleneck.duration_ms if bottleneck else None,
        partition_id=store.partition_id,
        replica_id=store.replica_id,
        tenant_id=store.tenant_id,
        transport_exception=store.transport_exception,
        transport_exception_message=message,
        transport_error_code=error_code,
        raw_text=raw_text,
    )


def extract_interactions(pairings: Iterable[RawPairing]) -> list[NetworkInteraction]:
    """Walk every record tree and collect its store calls, in tree order."""
    interactions = []
    for pairing in pairings:
        for node in flatten(pairing.record):
            for statistic in node.store_responses:
                interaction = interaction_from(statistic, pairing.raw_text)
                if interaction is not None:
                    interactions.append(interaction)
    return interactions
