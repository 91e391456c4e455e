import os

import pytest

from builders import DEFAULT_ADDRESS, make_record, make_store_response, to_line
from diag_analyzer.config import AnalyzerConfig
from diag_analyzer.lenient_parser import parse
from diag_analyzer.models import NetworkInteraction, RawPairing


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep DIAG_* variables from the host out of every test."""
    for name in list(os.environ):
        if name.startswith("DIAG_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config():
    return AnalyzerConfig()


@pytest.fixture
def small_config():
    return AnalyzerConfig(
        group_entry_limit=2,
        percentile_entry_limit=2,
        high_latency_interaction_limit=3,
        top_endpoint_limit=1,
        system_snapshot_limit=2,
        client_config_snapshot_limit=2,
    )


@pytest.fixture
def make_interaction():
    """Factory for NetworkInteraction with sensible defaults."""
    def _make(duration_ms, **overrides):
        fields = {
            "physical_address": DEFAULT_ADDRESS,
            "resource_type": "Document",
            "operation_type": "Read",
            "status_code": "Ok",
            "sub_status_code": "Unknown",
        }
        fields.update(overrides)
        return NetworkInteraction(duration_ms=duration_ms, **fields)
    return _make


@pytest.fixture
def make_pairing():
    """Factory for RawPairing built through the real parser."""
    def _make(**record_kwargs):
        line = to_line(make_record(**record_kwargs))
        return RawPairing(record=parse(line), raw_text=line)
    return _make


@pytest.fixture
def sample_log():
    """Three lines: one valid, one truncated mid-record, one garbage."""
    valid = to_line(make_record(
        name="X", duration=1000.0,
        store_responses=[make_store_response(duration=700.0)],
    ))
    cut_source = to_line(make_record(
        name="X", duration=700.0, start="2024-05-01T10:05:00Z",
        store_responses=[make_store_response(duration=650.0)],
    ))
    marker = '"BELatencyInMs": "1.2'
    truncated = cut_source[: cut_source.index(marker) + len(marker)] + "..."
    return "\n".join([valid, truncated, "###"])
