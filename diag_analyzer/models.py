"""Diagnostic record tree, derived report entities, and dict export.

Record objects are built from decoded JSON whose keys were folded to lower
case (see lenient_parser). Every field is optional; missing or wrong-typed
values fall back to the dataclass default instead of raising.
"""

import math
import re
from dataclasses import dataclass, fields, is_dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from urllib.parse import urlsplit

from diag_analyzer.percentiles import PercentileStatistics


class TransportEvent(Enum):
    CREATED = "Created"
    CHANNEL_ACQUISITION_STARTED = "ChannelAcquisitionStarted"
    PIPELINED = "Pipelined"
    TRANSIT_TIME = "TransitTime"
    RECEIVED = "Received"
    COMPLETED = "Completed"
    UNKNOWN = "Unknown"


# Timeline event names as they appear in the log, most advanced first
_TERMINAL_EVENT_ORDER = (
    ("Completed", TransportEvent.COMPLETED),
    ("Received", TransportEvent.RECEIVED),
    ("Transit Time", TransportEvent.TRANSIT_TIME),
    ("Pipelined", TransportEvent.PIPELINED),
    ("ChannelAcquisitionStarted", TransportEvent.CHANNEL_ACQUISITION_STARTED),
    ("Created", TransportEvent.CREATED),
)

_FRACTION_RE = re.compile(r"(\.\d{6})\d+")

# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------


def _as_mapping(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _as_optional_float(value: Any) -> float | None:
    """Numbers and numeric strings → float; anything else → None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _as_float(value: Any, default: float = 0.0) -> float:
    number = _as_optional_float(value)
    return default if number is None else number


def _as_optional_int(value: Any) -> int | None:
    number = _as_optional_float(value)
    return None if number is None else int(number)


def _as_int(value: Any, default: int = 0) -> int:
    number = _as_optional_int(value)
    return default if number is None else number


def _as_text(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float) and math.isfinite(value):
        return str(int(value)) if value.is_integer() else str(value)
    return None


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Accepts a trailing 'Z' and more than six fractional digits (truncated).
    """
    text = _as_text(value)
    if not text:
        return None
    text = text.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(r"\1", text)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Record tree
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TimelineEvent:
    name: str | None = None
    start_time: str | None = None
    duration_ms: float = 0.0


@dataclass(frozen=True)
class TransportTimeline:
    events: tuple[TimelineEvent, ...] = ()
    inflight_requests: int | None = None
    open_connections: int | None = None
    calls_pending_receive: int | None = None
    wait_for_connection_init: str | None = None

    def event_duration(self, name: str) -> float | None:
        for event in self.events:
            if event.name == name:
                return event.duration_ms
        return None

    def last_event(self) -> TransportEvent:
        """Most advanced phase the request reached."""
        present = {event.name for event in self.events}
        for name, transport_event in _TERMINAL_EVENT_ORDER:
            if name in present:
                return transport_event
        return TransportEvent.UNKNOWN

    def bottleneck_event(self) -> TimelineEvent | None:
        """Event with the longest duration (first one on ties)."""
        bottleneck = None
        for event in self.events:
            if bottleneck is None or event.duration_ms > bottleneck.duration_ms:
                bottleneck = event
        return bottleneck


@dataclass(frozen=True)
class StoreResult:
    status_code: str | None = None
    sub_status_code: str | None = None
    transport_exception: str | None = None
    physical_address: str | None = None
    backend_latency_ms: str | None = None
    timeline: TransportTimeline | None = None

    def _path_segment(self, index: int) -> str | None:
        if not self.physical_address:
            return None
        try:
            segments = urlsplit(self.physical_address).path.split("/")
        except ValueError:
            return None
        if index < len(segments) and segments[index]:
            return segments[index]
        return None

    @property
    def partition_id(self) -> str | None:
        return self._path_segment(6)

    @property
    def replica_id(self) -> str | None:
        return self._path_segment(8)

    @property
    def tenant_id(self) -> str | None:
        return endpoint_host(self.physical_address)

    @property
    def endpoint(self) -> str | None:
        return endpoint_authority(self.physical_address)


def endpoint_host(address: str | None) -> str | None:
    if not address:
        return None
    try:
        return urlsplit(address).hostname
    except ValueError:
        return None


def endpoint_authority(address: str | None) -> str | None:
    """host:port part of a store address."""
    if not address:
        return None
    try:
        return urlsplit(address).netloc or None
    except ValueError:
        return None


@dataclass(frozen=True)
class StoreResponseStatistic:
    resource_type: str | None = None
    operation_type: str | None = None
    duration_ms: float = 0.0
    store_result: StoreResult | None = None


@dataclass(frozen=True)
class SystemSample:
    date_utc: datetime | None = None
    cpu: float = 0.0
    memory: float = 0.0
    thread_wait_interval_ms: float = 0.0
    open_tcp_connections: int = 0
    is_thread_starving: bool = False
    available_threads: int = 0
    min_threads: int = 0
    max_threads: int = 0


@dataclass(frozen=True)
class ClientConfiguration:
    machine_id: str | None = None
    processor_count: int = 0
    clients_created: int = 0
    active_clients: int = 0
    connection_mode: str | None = None
    user_agent: str | None = None
    created_time_utc: str | None = None


@dataclass(frozen=True)
class CallSummary:
    direct_calls: tuple[tuple[str, int], ...] = ()
    gateway_calls: tuple[tuple[str, int], ...] = ()

    @property
    def direct_call_count(self) -> int:
        return sum(count for _, count in self.direct_calls)

    @property
    def gateway_call_count(self) -> int:
        return sum(count for _, count in self.gateway_calls)

    @property
    def total_call_count(self) -> int:
        return self.direct_call_count + self.gateway_call_count


@dataclass(frozen=True)
class DiagnosticNode:
    name: str | None = None
    start_time: str | None = None
    duration_ms: float = 0.0
    children: tuple["DiagnosticNode", ...] = ()
    store_responses: tuple[StoreResponseStatistic, ...] = ()
    system_history: tuple[SystemSample, ...] = ()


@dataclass(frozen=True)
class DiagnosticRecord(DiagnosticNode):
    """Root of one log line. Also a node, so the walker yields it too."""

    start_datetime: str | None = None
    summary: CallSummary | None = None
    client_configuration: ClientConfiguration | None = None


@dataclass(frozen=True)
class RawPairing:
    record: DiagnosticRecord
    raw_text: str


# ---------------------------------------------------------------------------
# Builders from case-folded JSON mappings
# ---------------------------------------------------------------------------


def _timeline_from(data: dict) -> TransportTimeline:
    events = tuple(
        TimelineEvent(
            name=_as_text(item.get("event")),
            start_time=_as_text(item.get("starttimeutc")),
            duration_ms=_as_float(item.get("durationinms")),
        )
        for item in _as_list(data.get("requesttimeline"))
        if isinstance(item, dict)
    )
    endpoint_stats = _as_mapping(data.get("serviceendpointstats"))
    connection_stats = _as_mapping(data.get("connectionstats"))
    return TransportTimeline(
        events=events,
        inflight_requests=_as_optional_int(endpoint_stats.get("inflightrequests")),
        open_connections=_as_optional_int(endpoint_stats.get("openconnections")),
        calls_pending_receive=_as_optional_int(connection_stats.get("callspendingreceive")),
        wait_for_connection_init=_as_text(connection_stats.get("waitforconnectioninit")),
    )


def _store_result_from(data: dict) -> StoreResult:
    timeline = data.get("transportrequesttimeline")
    return StoreResult(
        status_code=_as_text(data.get("statuscode")),
        sub_status_code=_as_text(data.get("substatuscode")),
        transport_exception=_as_text(data.get("transportexception")),
        physical_address=_as_text(data.get("storephysicaladdress")),
        backend_latency_ms=_as_text(data.get("belatencyinms")),
        timeline=_timeline_from(timeline) if isinstance(timeline, dict) else None,
    )


def _store_response_from(data: dict) -> StoreResponseStatistic:
    store_result = data.get("storeresult")
    return StoreResponseStatistic(
        resource_type=_as_text(data.get("resourcetype")),
        operation_type=_as_text(data.get("operationtype")),
        duration_ms=_as_float(data.get("durationinms")),
        store_result=_store_result_from(store_result) if isinstance(store_result, dict) else None,
    )


def _system_samples_from(value: Any) -> list[SystemSample]:
    """Accepts either {"systemHistory": [...]} or a bare list of samples."""
    if isinstance(value, dict):
        value = value.get("systemhistory")
    samples = []
    for item in _as_list(value):
        if not isinstance(item, dict):
            continue
        thread_info = _as_mapping(item.get("threadinfo"))
        starving = _as_text(thread_info.get("isthreadstarving")) or ""
        samples.append(SystemSample(
            date_utc=parse_timestamp(item.get("dateutc")),
            cpu=_as_float(item.get("cpu")),
            memory=_as_float(item.get("memory")),
            thread_wait_interval_ms=_as_float(thread_info.get("threadwaitintervalinms")),
            open_tcp_connections=_as_int(item.get("numberofopentcpconnection")),
            is_thread_starving=starving.strip().lower() == "true",
            available_threads=_as_int(thread_info.get("availablethreads")),
            min_threads=_as_int(thread_info.get("minthreads")),
            max_threads=_as_int(thread_info.get("maxthreads")),
        ))
    return samples


def _child_mappings(data: dict) -> list[dict]:
    return [item for item in _as_list(data.get("children")) if isinstance(item, dict)]


def _node_fields(data: dict, children: tuple["DiagnosticNode", ...]) -> dict[str, Any]:
    node_data = _as_mapping(data.get("data"))
    request_stats = _as_mapping(node_data.get("client side request stats"))

    store_responses = tuple(
        _store_response_from(item)
        for item in _as_list(request_stats.get("storeresponsestatistics"))
        if isinstance(item, dict)
    )
    system_history = tuple(
        _system_samples_from(node_data.get("system info"))
        + _system_samples_from(request_stats.get("systeminfo"))
    )
    duration = _as_float(data.get("duration in milliseconds"))
    return {
        "name": _as_text(data.get("name")),
        "start_time": _as_text(data.get("start time")),
        "duration_ms": duration if duration >= 0 else 0.0,
        "children": children,
        "store_responses": store_responses,
        "system_history": system_history,
    }


def _children_from(data: dict) -> tuple[DiagnosticNode, ...]:
    """Build the subtree under data bottom-up with an explicit stack.

    Nesting depth is bounded only by what json.loads accepts, not by the
    interpreter's recursion limit.
    """
    pending = _child_mappings(data)
    order = []
    while pending:
        current = pending.pop()
        order.append(current)
        pending.extend(_child_mappings(current))

    # Reversed pre-order visits every child before its parent
    built: dict[int, DiagnosticNode] = {}
    for mapping in reversed(order):
        children = tuple(built[id(child)] for child in _child_mappings(mapping))
        built[id(mapping)] = DiagnosticNode(**_node_fields(mapping, children))
    return tuple(built[id(child)] for child in _child_mappings(data))


def node_from_mapping(data: dict) -> DiagnosticNode:
    return DiagnosticNode(**_node_fields(data, _children_from(data)))


def _call_counts(value: Any) -> tuple[tuple[str, int], ...]:
    return tuple((str(key), _as_int(count)) for key, count in _as_mapping(value).items())


def _client_configuration_from(data: dict) -> ClientConfiguration:
    return ClientConfiguration(
        machine_id=_as_text(data.get("machineid")),
        processor_count=_as_int(data.get("processorcount")),
        clients_created=_as_int(data.get("numberofclientscreated")),
        active_clients=_as_int(data.get("numberofactiveclients")),
        connection_mode=_as_text(data.get("connectionmode")),
        user_agent=_as_text(data.get("user agent")),
        created_time_utc=_as_text(data.get("client created time utc")),
    )


def record_from_mapping(data: dict) -> DiagnosticRecord:
    """Build a DiagnosticRecord from a decoded line with lower-cased keys."""
    summary = data.get("summary")
    client_config = _as_mapping(data.get("data")).get("client configuration")
    return DiagnosticRecord(
        **_node_fields(data, _children_from(data)),
        start_datetime=_as_text(data.get("start datetime")),
        summary=CallSummary(
            direct_calls=_call_counts(summary.get("directcalls")),
            gateway_calls=_call_counts(summary.get("gatewaycalls")),
        ) if isinstance(summary, dict) else None,
        client_configuration=(
            _client_configuration_from(client_config)
            if isinstance(client_config, dict) else None
        ),
    )


# ---------------------------------------------------------------------------
# Derived entities
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NetworkInteraction:
    duration_ms: float
    physical_address: str
    resource_type: str | None = None
    operation_type: str | None = None
    status_code: str | None = None
    sub_status_code: str | None = None
    created: float | None = None
    channel_acquisition_started: float | None = None
    pipelined: float | None = None
    transit_time: float | None = None
    received: float | None = None
    completed: float | None = None
    backend_latency_ms: str | None = None
    inflight_requests: int | None = None
    open_connections: int | None = None
    calls_pending_receive: int | None = None
    wait_for_connection_init: str | None = None
    last_event: TransportEvent | None = None
    bottleneck_event_name: str | None = None
    bottleneck_event_duration: float | None = None
    partition_id: str | None = None
    replica_id: str | None = None
    tenant_id: str | None = None
    transport_exception: str | None = None
    transport_exception_message: str | None = None
    transport_error_code: str | None = None
    raw_text: str = ""


# Columns shown for an interaction in drill-down lists
GROUPED_ENTRY_FIELDS = (
    "duration_ms",
    "status_code",
    "sub_status_code",
    "resource_type",
    "operation_type",
    "transport_error_code",
    "raw_text",
)

NETWORK_INTERACTION_FIELDS = tuple(f.name for f in fields(NetworkInteraction))


@dataclass(frozen=True)
class GroupedEntry:
    duration_ms: float
    status_code: str | None = None
    sub_status_code: str | None = None
    resource_type: str | None = None
    operation_type: str | None = None
    transport_error_code: str | None = None
    raw_text: str = ""


def grouped_entry_from(interaction: NetworkInteraction) -> GroupedEntry:
    return GroupedEntry(**{name: getattr(interaction, name) for name in GROUPED_ENTRY_FIELDS})


@dataclass(frozen=True)
class EndpointCount:
    endpoint: str
    count: int


@dataclass(frozen=True)
class PhaseDetail:
    phase: str | None
    count: int
    min_duration: float
    max_duration: float
    endpoint_count: int
    top_endpoints: tuple[EndpointCount, ...] = ()
    entries: tuple[GroupedEntry, ...] = ()


@dataclass(frozen=True)
class GroupedBucket:
    key: str
    stats: PercentileStatistics
    entries: tuple[GroupedEntry, ...] = ()
    entries_at_p50: tuple[GroupedEntry, ...] = ()
    entries_at_p75: tuple[GroupedEntry, ...] = ()
    entries_at_p90: tuple[GroupedEntry, ...] = ()
    entries_at_p95: tuple[GroupedEntry, ...] = ()

    @property
    def count(self) -> int:
        return self.stats.count


@dataclass(frozen=True)
class TransportEventGroup(GroupedBucket):
    event: TransportEvent = TransportEvent.UNKNOWN
    phase_details: tuple[PhaseDetail, ...] = ()


@dataclass(frozen=True)
class OperationBucket:
    operation: str
    stats: PercentileStatistics
    min_network_calls: int = 0
    max_network_calls: int = 0

    @property
    def count(self) -> int:
        return self.stats.count


@dataclass(frozen=True)
class DiagnosticEntry:
    name: str | None
    start_time: str | None
    duration_ms: float
    direct_call_count: int
    gateway_call_count: int
    total_call_count: int
    raw_text: str


@dataclass(frozen=True)
class SystemMetricsTimePlot:
    sample_count: int
    start_time: datetime
    end_time: datetime
    cpu: PercentileStatistics
    memory: PercentileStatistics
    thread_wait_interval_ms: PercentileStatistics
    open_tcp_connections: PercentileStatistics
    snapshots: tuple[SystemSample, ...] = ()


@dataclass(frozen=True)
class ClientConfigSnapshot:
    date_utc: datetime
    machine_id: str
    short_machine_id: str
    processor_count: int
    clients_created: int
    active_clients: int
    connection_mode: str | None = None


@dataclass(frozen=True)
class ClientConfigTimePlot:
    sample_count: int
    start_time: datetime
    end_time: datetime
    unique_machine_ids: tuple[str, ...]
    processor_count: PercentileStatistics
    clients_created: PercentileStatistics
    active_clients: PercentileStatistics
    snapshots: tuple[ClientConfigSnapshot, ...] = ()


@dataclass(frozen=True)
class AnalysisResult:
    total_entries: int = 0
    parsed_entries: int = 0
    repaired_entries: int = 0
    high_latency_entries: int = 0
    target_operation: str | None = None
    high_latency_diagnostics: tuple[DiagnosticEntry, ...] = ()
    operation_buckets: tuple[OperationBucket, ...] = ()
    high_latency_network_interactions: tuple[NetworkInteraction, ...] = ()
    resource_type_groups: tuple[GroupedBucket, ...] = ()
    status_code_groups: tuple[GroupedBucket, ...] = ()
    transport_exception_groups: tuple[GroupedBucket, ...] = ()
    transport_event_groups: tuple[TransportEventGroup, ...] = ()
    system_metrics: SystemMetricsTimePlot | None = None
    client_config_metrics: ClientConfigTimePlot | None = None


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


def to_dict(value: Any) -> Any:
    """Convert result objects into JSON-ready primitives."""
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_dict(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [to_dict(item) for item in value]
    if isinstance(value, dict):
        return {str(k): to_dict(v) for k, v in value.items()}
    return value


def interaction_to_dict(interaction: NetworkInteraction) -> dict[str, Any]:
    return {name: to_dict(getattr(interaction, name)) for name in NETWORK_INTERACTION_FIELDS}


def entry_to_dict(entry: GroupedEntry) -> dict[str, Any]:
    return {name: getattr(entry, name) for name in GROUPED_ENTRY_FIELDS}
