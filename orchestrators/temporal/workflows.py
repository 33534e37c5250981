"""Temporal workflows for batch transcription.

Workflows are the orchestration layer. They call activities, wait on
durable timers and keep only transient state, so Temporal can replay them
from history on any worker after a restart.

Workflow code must stay deterministic: time comes from workflow.now(),
waits go through workflow.sleep(), and all I/O lives in activities.
workflow.logger drops messages while a workflow is replaying.
"""

import asyncio
from datetime import timedelta

from temporalio import workflow
from temporalio.exceptions import (
    ActivityError,
    ApplicationError,
    ChildWorkflowError,
    is_cancelled_exception,
)

with workflow.unsafe.imports_passed_through():
    from core.models import (
        ErrorType,
        HttpResponseSnapshot,
        MonitorResult,
        MonitorState,
        OrchestrationTimings,
        SubmissionState,
        TranscriptionOutcome,
        TranscriptionRequest,
        TranscriptionStatusDocument,
    )
    from core.policy import PollAction, SubmissionAction, decide_poll, decide_submission

    from .activities import (
        ActivityTimeouts,
        SAVE_RETRY_POLICY,
        STATUS_CHECK_RETRY_POLICY,
        SUBMISSION_RETRY_POLICY,
        TranscriptionActivities,
    )


MONITOR_ID_SUFFIX = "-monitor"


def monitor_workflow_id(workflow_id: str) -> str:
    """Id of the monitor child started by a transcription workflow."""
    return f"{workflow_id}{MONITOR_ID_SUFFIX}"


@workflow.defn
class MonitorTranscriptionWorkflow:
    """Poll a transcription job until it finishes, then save the result.

    States: Polling -> Succeeded | Failed | TimedOut, or Cancelled when the
    run is cancelled. A status check that runs out of retries also ends in
    Failed.
    """

    def __init__(self) -> None:
        self._state = MonitorState.POLLING
        self._poll_attempts = 0
        self._last_status: str | None = None

    @workflow.query
    def state(self) -> str:
        """Current monitor state."""
        return self._state.value

    @workflow.query
    def last_status(self) -> str | None:
        """Provider status seen on the most recent poll."""
        return self._last_status

    @workflow.run
    async def run(self, status_url: str, timings_dict: dict | None = None) -> dict:
        """Execute the monitoring loop.

        Args:
            status_url: Polling URL returned by the submission
            timings_dict: Serialized OrchestrationTimings

        Returns:
            Serialized MonitorResult

        Raises:
            ApplicationError: PollingFailure for a terminal non-success status,
                DeadlineExceeded when the deadline passes while still polling
        """
        timings = OrchestrationTimings.model_validate(timings_dict or {})
        expiry_time = workflow.now() + timedelta(seconds=timings.deadline_seconds)

        try:
            while workflow.now() < expiry_time:
                workflow.logger.info(f"Monitoring Transcription at: {status_url}")
                self._poll_attempts += 1

                document_dict = await workflow.execute_activity_method(
                    TranscriptionActivities.get_transcription_status,
                    status_url,
                    start_to_close_timeout=ActivityTimeouts.STATUS_CHECK_START_TO_CLOSE,
                    retry_policy=STATUS_CHECK_RETRY_POLICY,
                )
                document = TranscriptionStatusDocument.model_validate(document_dict)
                decision = decide_poll(document)
                self._last_status = decision.raw_status

                if decision.action == PollAction.WAIT:
                    wait = timedelta(seconds=timings.poll_interval_seconds)
                    workflow.logger.info(
                        f"Transcription status: {decision.raw_status}. "
                        f"Checking status again at: {workflow.now() + wait}"
                    )
                    await workflow.sleep(wait)
                    continue

                if decision.action == PollAction.SAVE:
                    saved = await workflow.execute_activity_method(
                        TranscriptionActivities.save_transcription,
                        document_dict,
                        start_to_close_timeout=ActivityTimeouts.SAVE_START_TO_CLOSE,
                        retry_policy=SAVE_RETRY_POLICY,
                    )
                    self._state = MonitorState.SUCCEEDED
                    return MonitorResult(
                        status_url=status_url,
                        poll_attempts=self._poll_attempts,
                        saved=saved,
                    ).model_dump()

                self._state = MonitorState.FAILED
                workflow.logger.warning(f"Transcription failed: {decision.message}")
                raise ApplicationError(
                    f"Transcription failed with status '{decision.raw_status}': "
                    f"{decision.message}",
                    type=ErrorType.POLLING_FAILURE.value,
                    non_retryable=True,
                )
        except asyncio.CancelledError:
            self._state = MonitorState.CANCELLED
            raise
        except ActivityError as e:
            # Cancellation while an activity runs arrives wrapped
            self._state = (
                MonitorState.CANCELLED if is_cancelled_exception(e) else MonitorState.FAILED
            )
            raise

        self._state = MonitorState.TIMED_OUT
        workflow.logger.warning(
            f"Transcription still '{self._last_status}' after "
            f"{timings.deadline_seconds}s, giving up"
        )
        raise ApplicationError(
            f"Transcription did not finish within {timings.deadline_seconds} seconds "
            f"({self._poll_attempts} status checks)",
            type=ErrorType.DEADLINE_EXCEEDED.value,
            non_retryable=True,
        )


@workflow.defn
class TranscribeAudioWorkflow:
    """Submit audio for transcription and hand off to the monitor.

    States: Submitting -> Accepted | RateLimited | Failed. A rate limited
    submission waits on a durable timer and goes back to Submitting until
    the deadline passes.
    """

    def __init__(self) -> None:
        self._state = SubmissionState.SUBMITTING
        self._submission_attempts = 0
        self._status_url: str | None = None

    @workflow.query
    def state(self) -> str:
        """Current submission state."""
        return self._state.value

    @workflow.query
    def status_url(self) -> str | None:
        """Polling URL, once the submission has been accepted."""
        return self._status_url

    @workflow.run
    async def run(self, request_dict: dict) -> dict:
        """Execute the transcription workflow.

        Args:
            request_dict: Serialized TranscriptionRequest

        Returns:
            Serialized TranscriptionOutcome

        Raises:
            ApplicationError: FatalSubmissionError, DeadlineExceeded, or the
                error type the monitor failed with
        """
        request = TranscriptionRequest.model_validate(request_dict)
        timings = request.timings
        expiry_time = workflow.now() + timedelta(seconds=timings.deadline_seconds)

        while workflow.now() < expiry_time:
            self._state = SubmissionState.SUBMITTING
            self._submission_attempts += 1

            response_dict = await workflow.execute_activity_method(
                TranscriptionActivities.submit_transcription,
                request_dict,
                start_to_close_timeout=ActivityTimeouts.SUBMISSION_START_TO_CLOSE,
                retry_policy=SUBMISSION_RETRY_POLICY,
            )
            response = HttpResponseSnapshot.model_validate(response_dict)
            decision = decide_submission(response, timings.default_retry_after_seconds)

            if decision.action == SubmissionAction.ACCEPT:
                self._state = SubmissionState.ACCEPTED
                self._status_url = decision.status_url
                workflow.logger.info(f"Transcription Status Url: {self._status_url}")
                break

            if decision.action == SubmissionAction.RETRY:
                self._state = SubmissionState.RATE_LIMITED
                workflow.logger.info(
                    "Rate limit on batch transcription hit. "
                    f"Retrying again at: {workflow.now() + decision.wait}"
                )
                await workflow.sleep(decision.wait)
                continue

            self._state = SubmissionState.FAILED
            raise ApplicationError(
                decision.reason,
                type=ErrorType.FATAL_SUBMISSION_ERROR.value,
                non_retryable=True,
            )

        if self._status_url is None:
            self._state = SubmissionState.FAILED
            raise ApplicationError(
                f"Transcription was not accepted within {timings.deadline_seconds} seconds "
                f"({self._submission_attempts} submission attempts)",
                type=ErrorType.DEADLINE_EXCEEDED.value,
                non_retryable=True,
            )

        try:
            monitor_dict = await workflow.execute_child_workflow(
                MonitorTranscriptionWorkflow.run,
                args=[self._status_url, timings.model_dump()],
                id=monitor_workflow_id(workflow.info().workflow_id),
            )
        except ChildWorkflowError as e:
            if isinstance(e.cause, ApplicationError):
                # Surface the monitor's failure category on this workflow
                raise ApplicationError(
                    e.cause.message,
                    type=e.cause.type,
                    non_retryable=True,
                ) from e
            raise

        monitor = MonitorResult.model_validate(monitor_dict)
        return TranscriptionOutcome(
            request_id=request.id,
            status_url=monitor.status_url,
            submission_attempts=self._submission_attempts,
            poll_attempts=monitor.poll_attempts,
            saved=monitor.saved,
        ).model_dump()
