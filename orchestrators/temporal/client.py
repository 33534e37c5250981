"""Temporal client for starting and inspecting transcription workflows.

This module is also the trigger boundary: each inbound notification
`{id, subject, data: {url}}` starts exactly one TranscribeAudioWorkflow.
The workflow id is derived from the notification id, so a redelivered
notification finds the existing run instead of starting a second one.

Usage:
    from orchestrators.temporal.client import get_client, handle_notification
    client = await get_client(settings.temporal.address)
    handle = await handle_notification(event, client)

    # Check workflow status:
    info = await get_workflow_status(handle.id, client)
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any, Iterable

from pydantic import ValidationError
from temporalio.client import (
    Client,
    WorkflowExecutionStatus,
    WorkflowFailureError,
    WorkflowHandle,
    WorkflowQueryFailedError,
)
from temporalio.exceptions import ApplicationError, WorkflowAlreadyStartedError
from temporalio.service import RPCError

from core.config import DEFAULT_NAMESPACE, DEFAULT_TEMPORAL_ADDRESS
from core.models import OrchestrationTimings, SubmissionState, TranscriptionRequest

from .worker import TASK_QUEUE
from .workflows import (
    MonitorTranscriptionWorkflow,
    TranscribeAudioWorkflow,
    monitor_workflow_id,
)

logger = logging.getLogger(__name__)

# =============================================================================
# Configuration
# =============================================================================

WORKFLOW_ID_PREFIX = "transcribe-"

# Safety net above the two per-phase deadlines
TRANSCRIPTION_EXECUTION_TIMEOUT = timedelta(hours=49)


# =============================================================================
# Status Types
# =============================================================================


class WorkflowStatus(str, Enum):
    """Workflow execution status."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TERMINATED = "terminated"
    TIMED_OUT = "timed_out"
    UNKNOWN = "unknown"


_STATUS_MAP = {
    WorkflowExecutionStatus.RUNNING: WorkflowStatus.RUNNING,
    WorkflowExecutionStatus.COMPLETED: WorkflowStatus.COMPLETED,
    WorkflowExecutionStatus.FAILED: WorkflowStatus.FAILED,
    WorkflowExecutionStatus.CANCELED: WorkflowStatus.CANCELLED,
    WorkflowExecutionStatus.TERMINATED: WorkflowStatus.TERMINATED,
    WorkflowExecutionStatus.TIMED_OUT: WorkflowStatus.TIMED_OUT,
}


def map_status(status: WorkflowExecutionStatus | None) -> WorkflowStatus:
    """Translate a Temporal execution status to WorkflowStatus."""
    return _STATUS_MAP.get(status, WorkflowStatus.UNKNOWN)


@dataclass
class WorkflowInfo:
    """Information about a workflow execution."""

    workflow_id: str
    run_id: str | None
    status: WorkflowStatus
    state: str | None = None
    result: Any | None = None
    error: str | None = None
    error_type: str | None = None
    monitor_state: str | None = None
    last_status: str | None = None


@dataclass
class ConsumeResult:
    """Outcome of consuming a batch of notifications."""

    started: list[str] = field(default_factory=list)
    rejected: list[str] = field(default_factory=list)


# =============================================================================
# Client Functions
# =============================================================================


async def get_client(
    address: str = DEFAULT_TEMPORAL_ADDRESS,
    namespace: str = DEFAULT_NAMESPACE,
) -> Client:
    """Get a connected Temporal client.

    Args:
        address: Temporal server address (default: localhost:7233)
        namespace: Temporal namespace (default: default)

    Returns:
        Connected Temporal client
    """
    return await Client.connect(address, namespace=namespace)


def workflow_id_for(request: TranscriptionRequest) -> str:
    """Workflow id for a request, stable across redeliveries."""
    return f"{WORKFLOW_ID_PREFIX}{request.id}"


async def start_transcription_workflow(
    request: TranscriptionRequest,
    client: Client,
    task_queue: str = TASK_QUEUE,
) -> WorkflowHandle:
    """Start a transcription workflow without waiting for completion.

    If a workflow for the same request id already exists, its handle is
    returned instead.

    Args:
        request: The transcription request
        client: Connected client
        task_queue: Task queue the worker listens on

    Returns:
        WorkflowHandle for tracking and retrieving results
    """
    workflow_id = workflow_id_for(request)
    try:
        return await client.start_workflow(
            TranscribeAudioWorkflow.run,
            request.model_dump(),
            id=workflow_id,
            task_queue=task_queue,
            execution_timeout=TRANSCRIPTION_EXECUTION_TIMEOUT,
        )
    except WorkflowAlreadyStartedError:
        logger.info(f"Workflow already started for notification: {workflow_id}")
        return client.get_workflow_handle(workflow_id)


async def run_transcription_workflow(
    request: TranscriptionRequest,
    client: Client,
    task_queue: str = TASK_QUEUE,
) -> dict:
    """Start a transcription workflow and wait for its outcome.

    Returns:
        Serialized TranscriptionOutcome

    Raises:
        WorkflowFailureError: If the workflow ends in a failed state
    """
    handle = await start_transcription_workflow(request, client, task_queue)
    return await handle.result()


async def handle_notification(
    event: dict,
    client: Client,
    task_queue: str = TASK_QUEUE,
    timings: OrchestrationTimings | None = None,
) -> WorkflowHandle:
    """Start one workflow for one inbound notification.

    Args:
        event: Notification with id, subject and data.url
        client: Connected client
        task_queue: Task queue the worker listens on
        timings: Optional timing overrides for the run

    Returns:
        Handle of the started (or already running) workflow

    Raises:
        ValidationError: If the notification is missing required fields
    """
    request = TranscriptionRequest.from_event(event, timings)
    handle = await start_transcription_workflow(request, client, task_queue)
    logger.info(f"Started transcription workflow {handle.id} for {request.subject}")
    return handle


async def consume_notifications(
    messages: Iterable[str],
    client: Client,
    task_queue: str = TASK_QUEUE,
    timings: OrchestrationTimings | None = None,
) -> ConsumeResult:
    """Start one workflow per JSON notification.

    Blank lines are ignored. Messages that are not valid notifications are
    logged and reported as rejected; the rest of the batch still runs.

    Args:
        messages: JSON documents, one notification each
        client: Connected client
        task_queue: Task queue the worker listens on
        timings: Optional timing overrides for every run

    Returns:
        ConsumeResult with started workflow ids and rejected messages
    """
    result = ConsumeResult()

    for message in messages:
        message = message.strip()
        if not message:
            continue

        try:
            event = json.loads(message)
            if not isinstance(event, dict):
                raise ValueError(f"expected a JSON object, got {type(event).__name__}")
            handle = await handle_notification(event, client, task_queue, timings)
        except (ValueError, ValidationError) as e:
            logger.error(f"Rejected notification: {e}")
            result.rejected.append(message)
            continue

        result.started.append(handle.id)

    return result


def _describe_failure(error: WorkflowFailureError) -> tuple[str, str | None]:
    cause = error.cause
    if isinstance(cause, ApplicationError):
        return cause.message, cause.type
    if cause is not None:
        return str(cause), type(cause).__name__
    return str(error), None


async def _add_monitor_progress(info: WorkflowInfo, client: Client) -> None:
    """Fill in the monitor child's state and the provider status it saw last."""
    monitor = client.get_workflow_handle(monitor_workflow_id(info.workflow_id))
    try:
        info.monitor_state = await monitor.query(MonitorTranscriptionWorkflow.state)
        info.last_status = await monitor.query(MonitorTranscriptionWorkflow.last_status)
    except (WorkflowQueryFailedError, RPCError) as e:
        # The monitor may not have started yet
        logger.warning(f"Monitor query failed for {info.workflow_id}: {e}")


async def get_workflow_status(
    workflow_id: str,
    client: Client,
) -> WorkflowInfo:
    """Get the status of a workflow execution.

    Args:
        workflow_id: The workflow ID to check
        client: Connected client

    Returns:
        WorkflowInfo with status, orchestrator state (and monitor progress
        while polling) and optionally result/error
    """
    try:
        handle = client.get_workflow_handle(workflow_id)
        describe = await handle.describe()
    except RPCError as e:
        if "not found" in str(e).lower():
            return WorkflowInfo(
                workflow_id=workflow_id,
                run_id=None,
                status=WorkflowStatus.UNKNOWN,
                error=f"Workflow not found: {workflow_id}",
            )
        raise

    info = WorkflowInfo(
        workflow_id=workflow_id,
        run_id=describe.run_id,
        status=map_status(describe.status),
    )

    if info.status == WorkflowStatus.RUNNING:
        try:
            info.state = await handle.query(TranscribeAudioWorkflow.state)
        except WorkflowQueryFailedError as e:
            logger.warning(f"State query failed for {workflow_id}: {e}")
        if info.state == SubmissionState.ACCEPTED.value:
            await _add_monitor_progress(info, client)

    elif info.status == WorkflowStatus.COMPLETED:
        info.result = await handle.result()

    elif info.status == WorkflowStatus.FAILED:
        try:
            await handle.result()
        except WorkflowFailureError as e:
            info.error, info.error_type = _describe_failure(e)

    return info


async def get_workflow_result(
    workflow_id: str,
    client: Client,
    timeout: timedelta | None = None,
) -> Any:
    """Get the result of a completed workflow.

    Args:
        workflow_id: The workflow ID
        client: Connected client
        timeout: Optional timeout for waiting

    Returns:
        Workflow result

    Raises:
        WorkflowFailureError: If the workflow failed
        asyncio.TimeoutError: If the timeout elapses first
    """
    handle = client.get_workflow_handle(workflow_id)

    if timeout:
        return await asyncio.wait_for(handle.result(), timeout=timeout.total_seconds())
    return await handle.result()


async def cancel_workflow(
    workflow_id: str,
    client: Client,
) -> bool:
    """Request cancellation of a running workflow.

    Cancellation is delivered at the workflow's next suspension point.

    Returns:
        True if cancellation was requested successfully
    """
    try:
        handle = client.get_workflow_handle(workflow_id)
        await handle.cancel()
        return True
    except RPCError as e:
        if "not found" in str(e).lower():
            return False
        raise


async def list_workflows(
    client: Client,
    query: str | None = 'WorkflowType="TranscribeAudioWorkflow"',
    limit: int | None = None,
) -> list[WorkflowInfo]:
    """List workflows matching a query.

    Args:
        client: Connected client
        query: Visibility query (default: all transcription workflows)
        limit: Maximum number of workflows to return

    Returns:
        List of WorkflowInfo for matching workflows
    """
    workflows = []
    async for execution in client.list_workflows(query=query):
        workflows.append(
            WorkflowInfo(
                workflow_id=execution.id,
                run_id=execution.run_id,
                status=map_status(execution.status),
            )
        )
        if limit is not None and len(workflows) >= limit:
            break

    return workflows
