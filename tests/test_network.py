"""Tests for diag_analyzer/network.py."""

import pytest

from builders import (
    DEFAULT_ADDRESS,
    make_child,
    make_record,
    make_store_response,
    make_timeline,
    to_line,
)
from diag_analyzer.lenient_parser import parse
from diag_analyzer.models import RawPairing, StoreResponseStatistic, TransportEvent
from diag_analyzer.network import extract_interactions, interaction_from, parse_transport_exception

EXCEPTION = (
    "A client transport error occurred: The request timed out while waiting for a server "
    "response. (Time: 2024-05-01T10:00:01.000Z, activity ID: 1a2b, error code: "
    "ReceiveTimeout [0x0010], base error: HRESULT 0x80131500"
)


def pairing_for(record_dict):
    line = to_line(record_dict)
    return RawPairing(record=parse(line), raw_text=line)


class TestParseTransportException:
    def test_message_and_code(self):
        message, code = parse_transport_exception(EXCEPTION)
        assert message == (
            "A client transport error occurred: The request timed out while waiting for a "
            "server response."
        )
        assert code == "ReceiveTimeout [0x0010]"

    def test_no_time_marker_keeps_whole_text(self):
        message, code = parse_transport_exception("Connection reset")
        assert message == "Connection reset"
        assert code is None

    def test_marker_at_start_keeps_whole_text(self):
        text = "(Time: 2024-05-01) error code: Gone"
        message, code = parse_transport_exception(text)
        assert message == text
        assert code == "Gone"

    def test_case_insensitive(self):
        message, code = parse_transport_exception("Failed (time: x) ERROR CODE: ConnectTimeout")
        assert message == "Failed"
        assert code == "ConnectTimeout"

    @pytest.mark.parametrize("value", [None, ""])
    def test_absent(self, value):
        assert parse_transport_exception(value) == (None, None)


class TestInteractionFrom:
    def test_full_interaction(self):
        record = parse(to_line(make_record(
            store_responses=[make_store_response(duration=700.0, exception=EXCEPTION)],
        )))
        interaction = interaction_from(record.store_responses[0], "raw")

        assert interaction.duration_ms == 700.0
        assert interaction.physical_address == DEFAULT_ADDRESS
        assert interaction.resource_type == "Document"
        assert interaction.operation_type == "Read"
        assert interaction.status_code == "Ok"
        assert interaction.sub_status_code == "Unknown"
        assert interaction.created == 0.1
        assert interaction.transit_time == 650.0
        assert interaction.completed == 0.1
        assert interaction.backend_latency_ms == "1.25"
        assert interaction.inflight_requests == 2
        assert interaction.open_connections == 1
        assert interaction.calls_pending_receive == 0
        assert interaction.wait_for_connection_init == "False"
        assert interaction.last_event is TransportEvent.COMPLETED
        assert interaction.bottleneck_event_name == "Transit Time"
        assert interaction.bottleneck_event_duration == 650.0
        assert interaction.partition_id == "part-7"
        assert interaction.replica_id == "1234p"
        assert interaction.tenant_id == "cdb-ms-prod-westus1-be1.documents.azure.com"
        assert interaction.transport_error_code == "ReceiveTimeout [0x0010]"
        assert interaction.raw_text == "raw"

    def test_no_timeline(self):
        record = parse(to_line(make_record(store_responses=[make_store_response(timeline=None)])))
        interaction = interaction_from(record.store_responses[0], "")
        assert interaction.last_event is None
        assert interaction.bottleneck_event_name is None
        assert interaction.created is None

    def test_partial_timeline(self):
        timeline = make_timeline(events=[("Created", 0.1), ("Transit Time", 900.0)])
        record = parse(to_line(make_record(store_responses=[make_store_response(timeline=timeline)])))
        interaction = interaction_from(record.store_responses[0], "")
        assert interaction.last_event is TransportEvent.TRANSIT_TIME
        assert interaction.received is None

    def test_missing_store_result(self):
        assert interaction_from(StoreResponseStatistic(duration_ms=5.0), "") is None

    def test_missing_address(self):
        record = parse(to_line(make_record(store_responses=[make_store_response(address=None)])))
        assert interaction_from(record.store_responses[0], "") is None


class TestExtractInteractions:
    def test_walks_children_in_tree_order(self):
        record = make_record(
            store_responses=[make_store_response(duration=1.0)],
            children=[
                make_child(store_responses=[make_store_response(duration=2.0)], children=[
                    make_child(store_responses=[make_store_response(duration=3.0)]),
                ]),
                make_child(store_responses=[make_store_response(duration=4.0)]),
            ],
        )
        interactions = extract_interactions([pairing_for(record)])
        assert [i.duration_ms for i in interactions] == [1.0, 2.0, 3.0, 4.0]

    def test_raw_text_comes_from_pairing(self):
        pairing = pairing_for(make_record(store_responses=[make_store_response()]))
        [interaction] = extract_interactions([pairing])
        assert interaction.raw_text == pairing.raw_text

    def test_skips_calls_without_store(self):
        record = make_record(store_responses=[
            {"ResourceType": "Document", "DurationInMs": 3.0},
            make_store_response(duration=9.0),
        ])
        interactions = extract_interactions([pairing_for(record)])
        assert [i.duration_ms for i in interactions] == [9.0]

    def test_no_pairings(self):
        assert extract_interactions([]) == []
