"""Temporal implementation of the batch transcription workflow.

Temporal provides the durable execution this workflow depends on. Event
history is the checkpoint and durable timers drive the rate-limit backoff
and status polling, so a run resumes on any worker after a restart.

## Quick Start

1. Install Temporal CLI:
   brew install temporal

2. Start local Temporal server:
   temporal server start-dev

3. Start the worker (in one terminal):
   batch-transcription worker --config settings.yaml

4. Trigger a transcription (in another terminal):
   batch-transcription trigger --event notification.json

## Components

- activities.py: Activity implementations (HTTP calls, persistence)
- workflows.py: Submission and monitor workflows (orchestration logic)
- worker.py: Worker process that executes workflows/activities
- client.py: Trigger boundary plus status, result and cancellation helpers
"""

from .activities import (
    # Retry policies
    SAVE_RETRY_POLICY,
    STATUS_CHECK_RETRY_POLICY,
    SUBMISSION_RETRY_POLICY,
    # Timeout configurations
    ActivityTimeouts,
    # Activities
    TranscriptionActivities,
    build_submission_payload,
    # Activity option helpers
    get_save_activity_options,
    get_status_check_activity_options,
    get_submission_activity_options,
)
from .client import (
    TRANSCRIPTION_EXECUTION_TIMEOUT,
    ConsumeResult,
    WorkflowInfo,
    WorkflowStatus,
    cancel_workflow,
    consume_notifications,
    get_client,
    get_workflow_result,
    get_workflow_status,
    handle_notification,
    list_workflows,
    run_transcription_workflow,
    start_transcription_workflow,
    workflow_id_for,
)
from .worker import (
    TASK_QUEUE,
    WORKFLOWS,
    create_worker,
    create_workflow_runner,
    get_activities,
    run_worker,
)
from .workflows import (
    MonitorTranscriptionWorkflow,
    TranscribeAudioWorkflow,
    monitor_workflow_id,
)

__all__ = [
    # Retry Policies
    "SUBMISSION_RETRY_POLICY",
    "STATUS_CHECK_RETRY_POLICY",
    "SAVE_RETRY_POLICY",
    # Timeout Configurations
    "ActivityTimeouts",
    # Activity Option Helpers
    "get_submission_activity_options",
    "get_status_check_activity_options",
    "get_save_activity_options",
    # Activities
    "TranscriptionActivities",
    "build_submission_payload",
    # Workflows
    "TranscribeAudioWorkflow",
    "MonitorTranscriptionWorkflow",
    "monitor_workflow_id",
    # Client
    "TRANSCRIPTION_EXECUTION_TIMEOUT",
    "WorkflowStatus",
    "WorkflowInfo",
    "ConsumeResult",
    "get_client",
    "workflow_id_for",
    "start_transcription_workflow",
    "run_transcription_workflow",
    "handle_notification",
    "consume_notifications",
    "get_workflow_status",
    "get_workflow_result",
    "cancel_workflow",
    "list_workflows",
    # Worker
    "TASK_QUEUE",
    "WORKFLOWS",
    "get_activities",
    "create_workflow_runner",
    "create_worker",
    "run_worker",
]
