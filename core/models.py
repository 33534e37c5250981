"""Shared data models for batch transcription."""

from enum import Enum

import httpx
from pydantic import BaseModel, ConfigDict, Field


class ErrorType(str, Enum):
    """Failure categories raised as ApplicationError types."""

    TRANSIENT_RATE_LIMIT = "TransientRateLimit"
    FATAL_SUBMISSION_ERROR = "FatalSubmissionError"
    STATUS_CHECK_FAILURE = "StatusCheckFailure"
    POLLING_FAILURE = "PollingFailure"
    RESULT_FETCH_FAILURE = "ResultFetchFailure"
    DEADLINE_EXCEEDED = "DeadlineExceeded"


class SubmissionState(str, Enum):
    """States of the submission orchestrator."""

    SUBMITTING = "Submitting"
    RATE_LIMITED = "RateLimited"
    ACCEPTED = "Accepted"
    FAILED = "Failed"


class MonitorState(str, Enum):
    """States of the monitor orchestrator."""

    POLLING = "Polling"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    TIMED_OUT = "TimedOut"
    CANCELLED = "Cancelled"


class TranscriptionStatus(str, Enum):
    """Job status reported by the transcription provider."""

    NOT_STARTED = "NotStarted"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    OTHER = "Other"

    @classmethod
    def parse(cls, raw: str | None) -> "TranscriptionStatus":
        """Match a provider status string case-insensitively.

        Anything unrecognised (including None) maps to OTHER.
        """
        value = (raw or "").strip().lower()
        for member in cls:
            if member.value.lower() == value:
                return member
        return cls.OTHER


class OrchestrationTimings(BaseModel):
    """Time limits for one orchestration run.

    Carried inside the workflow input so a replayed run sees the same values
    it was started with.
    """

    model_config = ConfigDict(frozen=True)

    deadline_seconds: int = Field(24 * 60 * 60, ge=1, description="Global deadline per phase")
    poll_interval_seconds: int = Field(60, ge=1, description="Delay between status checks")
    default_retry_after_seconds: int = Field(
        60, ge=0, description="Wait used when a rate limit response has no usable Retry-After"
    )


class TranscriptionRequest(BaseModel):
    """Input of one transcription workflow."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Notification identifier")
    subject: str = Field(..., description="Reference to the source audio object")
    recordings_url: str = Field(..., min_length=1, description="URL the provider reads audio from")
    timings: OrchestrationTimings = Field(default_factory=OrchestrationTimings)

    @classmethod
    def from_event(
        cls, event: dict, timings: OrchestrationTimings | None = None
    ) -> "TranscriptionRequest":
        """Build a request from an inbound `{id, subject, data: {url}}` notification."""
        data = event.get("data") or {}
        payload = {
            "id": event.get("id"),
            "subject": event.get("subject"),
            "recordings_url": data.get("url") if isinstance(data, dict) else None,
        }
        if timings is not None:
            payload["timings"] = timings
        return cls.model_validate(payload)


class HttpResponseSnapshot(BaseModel):
    """Self-contained copy of an HTTP response, safe to record and replay."""

    model_config = ConfigDict(frozen=True)

    status_code: int
    reason_phrase: str = ""
    headers: dict[str, list[str]] = Field(default_factory=dict)
    body: str = ""

    @classmethod
    def from_httpx(cls, response: httpx.Response) -> "HttpResponseSnapshot":
        headers: dict[str, list[str]] = {}
        for name, value in response.headers.multi_items():
            headers.setdefault(name, []).append(value)
        return cls(
            status_code=response.status_code,
            reason_phrase=response.reason_phrase,
            headers=headers,
            body=response.text,
        )

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code <= 299

    def header(self, name: str) -> str | None:
        """First value of a header, looked up case-insensitively."""
        wanted = name.lower()
        for key, values in self.headers.items():
            if key.lower() == wanted and values:
                return values[0]
        return None


class TranscriptionStatusDocument(BaseModel):
    """Status payload returned when polling a transcription job.

    Unknown provider fields are kept so the whole document can be passed on
    to the save step.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    status: str = ""
    status_message: str | None = Field(None, alias="statusMessage")
    results_urls: dict[str, str] = Field(default_factory=dict, alias="resultsUrls")
    description: str | None = None

    @property
    def state(self) -> TranscriptionStatus:
        return TranscriptionStatus.parse(self.status)


class SavedTranscript(BaseModel):
    """Locations of the persisted transcription outputs."""

    json_key: str
    text_key: str
    json_uri: str
    text_uri: str


class MonitorResult(BaseModel):
    """Result of a monitor run that reached Succeeded."""

    status_url: str
    poll_attempts: int
    saved: SavedTranscript


class TranscriptionOutcome(BaseModel):
    """Final result of a transcription workflow."""

    request_id: str
    status_url: str
    submission_attempts: int
    poll_attempts: int
    saved: SavedTranscript
