"""Temporal activities for batch transcription.

Activities perform the side effects of a transcription run: submitting the
audio, checking the job status and saving the result. Each returns a plain
dict that Temporal records in the workflow history, so a replayed workflow
gets the recorded value back instead of repeating the HTTP call.

Activities never retry on their own. Retries are declared by the workflow
through the policies below.
"""

import json
from datetime import timedelta

import httpx
from temporalio import activity
from temporalio.common import RetryPolicy
from temporalio.exceptions import ApplicationError

from core.config import Settings
from core.models import (
    ErrorType,
    HttpResponseSnapshot,
    SavedTranscript,
    TranscriptionRequest,
    TranscriptionStatusDocument,
)
from core.storage import ObjectStore, result_object_keys
from core.transcript import extract_display_text

SUBSCRIPTION_KEY_HEADER = "Ocp-Apim-Subscription-Key"

# Channel whose results are fetched and saved
RESULT_CHANNEL = "channel_0"

# =============================================================================
# Retry Policies
# =============================================================================

# Submission is a POST: a single attempt, the workflow decides what happens next
SUBMISSION_RETRY_POLICY = RetryPolicy(maximum_attempts=1)

# Status checks are idempotent GETs
STATUS_CHECK_RETRY_POLICY = RetryPolicy(
    initial_interval=timedelta(seconds=1),
    backoff_coefficient=2.0,
    maximum_interval=timedelta(seconds=30),
    maximum_attempts=3,
)

SAVE_RETRY_POLICY = RetryPolicy(
    initial_interval=timedelta(seconds=1),
    backoff_coefficient=2.0,
    maximum_interval=timedelta(seconds=30),
    maximum_attempts=3,
    non_retryable_error_types=[ErrorType.RESULT_FETCH_FAILURE.value],
)


# =============================================================================
# Timeout Configurations
# =============================================================================

class ActivityTimeouts:
    """Timeout configurations for different activity types."""

    SUBMISSION_START_TO_CLOSE = timedelta(minutes=1)
    STATUS_CHECK_START_TO_CLOSE = timedelta(minutes=1)

    # Result documents can be large
    SAVE_START_TO_CLOSE = timedelta(minutes=5)


# =============================================================================
# Activity Options Helpers
# =============================================================================

def get_submission_activity_options() -> dict:
    """Get activity options for submit_transcription.

    Returns:
        Dict with start_to_close_timeout and retry_policy
    """
    return {
        "start_to_close_timeout": ActivityTimeouts.SUBMISSION_START_TO_CLOSE,
        "retry_policy": SUBMISSION_RETRY_POLICY,
    }


def get_status_check_activity_options() -> dict:
    """Get activity options for get_transcription_status.

    Returns:
        Dict with start_to_close_timeout and retry_policy
    """
    return {
        "start_to_close_timeout": ActivityTimeouts.STATUS_CHECK_START_TO_CLOSE,
        "retry_policy": STATUS_CHECK_RETRY_POLICY,
    }


def get_save_activity_options() -> dict:
    """Get activity options for save_transcription.

    Returns:
        Dict with start_to_close_timeout and retry_policy
    """
    return {
        "start_to_close_timeout": ActivityTimeouts.SAVE_START_TO_CLOSE,
        "retry_policy": SAVE_RETRY_POLICY,
    }


def build_submission_payload(request: TranscriptionRequest, settings: Settings) -> dict:
    """JSON body of a transcription submission."""
    return {
        "Name": request.id,
        "Description": request.subject,
        "Locale": settings.locale,
        "RecordingsUrl": request.recordings_url,
        "properties": settings.transcription.to_wire(),
    }


# =============================================================================
# Activities
# =============================================================================

class TranscriptionActivities:
    """Activities bound to one deployment's settings, store and HTTP client.

    The worker owns the HTTP client and closes it on shutdown.
    """

    def __init__(
        self,
        settings: Settings,
        store: ObjectStore,
        http_client: httpx.AsyncClient,
    ) -> None:
        self._settings = settings
        self._store = store
        self._http = http_client

    def _auth_headers(self) -> dict[str, str]:
        return {SUBSCRIPTION_KEY_HEADER: self._settings.speech_key}

    @activity.defn(name="submit_transcription")
    async def submit_transcription(self, request_dict: dict) -> dict:
        """Submit audio for transcription.

        Args:
            request_dict: Serialized TranscriptionRequest

        Returns:
            Serialized HttpResponseSnapshot of the provider's answer

        Recommended options: get_submission_activity_options()
        """
        request = TranscriptionRequest.model_validate(request_dict)
        activity.logger.info(f"Audio Url: {request.recordings_url}")

        response = await self._http.post(
            self._settings.submission_url,
            headers=self._auth_headers(),
            json=build_submission_payload(request, self._settings),
        )
        snapshot = HttpResponseSnapshot.from_httpx(response)

        activity.logger.info(
            f"Submission returned {snapshot.status_code} {snapshot.reason_phrase}"
        )
        return snapshot.model_dump()

    @activity.defn(name="get_transcription_status")
    async def get_transcription_status(self, status_url: str) -> dict:
        """Fetch the current status document of a transcription job.

        Args:
            status_url: URL from the submission's Location header

        Returns:
            The parsed JSON status document

        Recommended options: get_status_check_activity_options()
        """
        response = await self._http.get(status_url, headers=self._auth_headers())
        if not response.is_success:
            raise ApplicationError(
                f"Status check returned {response.status_code} {response.reason_phrase}",
                type=ErrorType.STATUS_CHECK_FAILURE.value,
            )

        try:
            document = response.json()
        except ValueError as e:
            raise ApplicationError(
                f"Status response is not valid JSON: {e}",
                type=ErrorType.STATUS_CHECK_FAILURE.value,
            ) from e

        if not isinstance(document, dict):
            raise ApplicationError(
                f"Status response must be a JSON object, got {type(document).__name__}",
                type=ErrorType.STATUS_CHECK_FAILURE.value,
            )

        activity.logger.debug(json.dumps(document))
        return document

    @activity.defn(name="save_transcription")
    async def save_transcription(self, status_document: dict) -> dict:
        """Fetch the finished transcription and persist it.

        Writes the raw result verbatim as `<name>.json` and the joined
        `Display` values as `<name>.txt`, where `<name>` is the base name of
        the original audio reference.

        Args:
            status_document: The Succeeded status document

        Returns:
            Serialized SavedTranscript

        Raises:
            ApplicationError: ResultFetchFailure if the result cannot be
                fetched or read

        Recommended options: get_save_activity_options()
        """
        document = TranscriptionStatusDocument.model_validate(status_document)

        results_url = document.results_urls.get(RESULT_CHANNEL)
        if not results_url:
            raise ApplicationError(
                f"Status document has no result URL for {RESULT_CHANNEL}",
                type=ErrorType.RESULT_FETCH_FAILURE.value,
                non_retryable=True,
            )
        if not document.description:
            raise ApplicationError(
                "Status document has no description to name the outputs after",
                type=ErrorType.RESULT_FETCH_FAILURE.value,
                non_retryable=True,
            )

        try:
            json_key, text_key = result_object_keys(document.description)
        except ValueError as e:
            raise ApplicationError(
                str(e), type=ErrorType.RESULT_FETCH_FAILURE.value, non_retryable=True
            ) from e

        activity.logger.info(f"Result Url: {results_url}")
        response = await self._http.get(results_url, headers=self._auth_headers())
        if not response.is_success:
            raise ApplicationError(
                "Received a non-successful HTTP status code while fetching the "
                f"transcription result. Status Code: {response.status_code}. "
                f"Reason: {response.reason_phrase}",
                type=ErrorType.RESULT_FETCH_FAILURE.value,
                non_retryable=True,
            )

        payload = response.content
        try:
            text = extract_display_text(payload)
        except ValueError as e:
            raise ApplicationError(
                str(e), type=ErrorType.RESULT_FETCH_FAILURE.value, non_retryable=True
            ) from e

        activity.logger.info("Saving transcription output...")
        container = self._settings.results_container

        json_uri = self._store.put(container, json_key, payload, "application/json")
        activity.logger.info(f"Saved transcription output (json): {json_uri}")

        text_uri = self._store.put(
            container, text_key, text.encode("utf-8"), "text/plain; charset=utf-8"
        )
        activity.logger.info(f"Saved transcription output (text): {text_uri}")

        return SavedTranscript(
            json_key=json_key,
            text_key=text_key,
            json_uri=json_uri,
            text_uri=text_uri,
        ).model_dump()
