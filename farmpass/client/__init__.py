"""
Push client library.

Drives the browser side of the subscription lifecycle against the
interfaces in farmpass.client.platform:

    device_id       stable per-browser identifier
    worker          background worker acquisition and monitoring
    orchestrator    permission state machine and subscribe flows
    session         coalesced token refresh and logout
    api             HTTP client for the push routes
    service_worker  push, click and close handlers
"""

from farmpass.client.device_id import resolve_device_id
from farmpass.client.orchestrator import PermissionState, PromptPolicy, PushOrchestrator
from farmpass.client.results import PushClientError, PushResult
from farmpass.client.worker import WorkerAcquisitionController, WorkerState


__all__ = [
    "PermissionState",
    "PromptPolicy",
    "PushClientError",
    "PushOrchestrator",
    "PushResult",
    "WorkerAcquisitionController",
    "WorkerState",
    "resolve_device_id",
]
