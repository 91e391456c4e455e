"""Builders for diagnostic log lines used across the test suite."""

import json

DEFAULT_ADDRESS = (
    "rntbd://cdb-ms-prod-westus1-be1.documents.azure.com:14364"
    "/apps/app-1/services/svc-1/partitions/part-7/replicas/1234p/"
)


def make_timeline(events=None, inflight=2, open_connections=1):
    if events is None:
        events = [("Created", 0.1), ("ChannelAcquisitionStarted", 0.2), ("Pipelined", 0.3),
                  ("Transit Time", 650.0), ("Received", 1.0), ("Completed", 0.1)]
    return {
        "requestTimeline": [
            {"event": name, "startTimeUtc": "2024-05-01T10:00:00.0000000Z", "durationInMs": duration}
            for name, duration in events
        ],
        "serviceEndpointStats": {"inflightRequests": inflight, "openConnections": open_connections},
        "connectionStats": {"waitforConnectionInit": "False", "callsPendingReceive": 0},
    }


def make_store_response(duration=700.0, status="Ok", sub_status="Unknown",
                        resource_type="Document", operation_type="Read",
                        address=DEFAULT_ADDRESS, exception=None, timeline="default"):
    store_result = {
        "StatusCode": status,
        "SubStatusCode": sub_status,
        "StorePhysicalAddress": address,
        "BELatencyInMs": "1.25",
        "TransportException": exception,
    }
    if timeline == "default":
        store_result["transportRequestTimeline"] = make_timeline()
    elif timeline is not None:
        store_result["transportRequestTimeline"] = timeline
    return {
        "ResourceType": resource_type,
        "OperationType": operation_type,
        "DurationInMs": duration,
        "StoreResult": store_result,
    }


def make_system_sample(date="2024-05-01T10:00:00.0000000Z", cpu=10.0, memory=2048.0,
                       wait=0.5, tcp=5):
    return {
        "dateUtc": date,
        "cpu": cpu,
        "memory": memory,
        "threadInfo": {
            "isThreadStarving": "False",
            "threadWaitIntervalInMs": wait,
            "availableThreads": 32766,
            "minThreads": 4,
            "maxThreads": 32767,
        },
        "numberOfOpenTcpConnection": tcp,
    }


def make_record(name="ReadItemAsync", duration=1000.0, start="2024-05-01T10:00:00Z",
                store_responses=None, children=None, direct_calls=None,
                system_history=None, machine_id="vmId:abcdef0123456789"):
    """A record dict shaped like one diagnostics log line."""
    request_stats = {
        "StoreResponseStatistics": store_responses if store_responses is not None else [],
    }
    if system_history is not None:
        request_stats["SystemInfo"] = {"systemHistory": system_history}

    data = {"Client Side Request Stats": request_stats}
    if machine_id is not None:
        data["Client Configuration"] = {
            "Client Created Time Utc": "2024-05-01T09:00:00Z",
            "MachineId": machine_id,
            "NumberOfClientsCreated": 1,
            "NumberOfActiveClients": 1,
            "ConnectionMode": "Direct",
            "User Agent": "cosmos-netstandard-sdk/3.38.0",
            "ProcessorCount": 4,
        }

    return {
        "Summary": {"DirectCalls": direct_calls if direct_calls is not None else {"(200, 0)": 1}},
        "name": name,
        "start datetime": start,
        "duration in milliseconds": duration,
        "data": data,
        "children": children or [],
    }


def make_child(name="Transport Request", duration=700.0, store_responses=None, children=None):
    return {
        "name": name,
        "duration in milliseconds": duration,
        "data": {"Client Side Request Stats": {"StoreResponseStatistics": store_responses or []}},
        "children": children or [],
    }


def to_line(record) -> str:
    return json.dumps(record)
