"""Request execution for ovrmnd.

Classes:
    :class:`HttpTransport` -- blocking transport backed by :class:`httpx.Client`.
    :class:`RequestExecutor` -- resolves parameters, consults the cache,
        sends the request and transforms the response.
    :class:`BatchOrchestrator` -- runs parameter sets sequentially through
        an executor, with optional fail-fast.

Example::

    from ovrmnd.client import HttpTransport, RequestExecutor

    with HttpTransport(timeout=10) as transport:
        result = RequestExecutor(transport).execute(service, endpoint, {"id": "42"})
"""

from ovrmnd.client.batch import BatchOrchestrator, parse_batch_json
from ovrmnd.client.executor import ExecutionStage, RequestExecutor
from ovrmnd.client.transport import HttpTransport, Transport, TransportRequest, TransportResponse

__all__ = [
    "BatchOrchestrator",
    "ExecutionStage",
    "HttpTransport",
    "RequestExecutor",
    "Transport",
    "TransportRequest",
    "TransportResponse",
    "parse_batch_json",
]
