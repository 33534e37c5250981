"""Decision rules for the submission and monitoring loops.

These functions look only at a recorded activity result and return the next
step, so workflow code can call them during replay.
"""

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum

from .models import HttpResponseSnapshot, TranscriptionStatus, TranscriptionStatusDocument

TOO_MANY_REQUESTS = 429

# The provider has used both spellings
RETRY_AFTER_HEADERS = ("Retry-After", "RetryAfter")

LOCATION_HEADER = "Location"


class SubmissionAction(str, Enum):
    """What to do after a submission attempt."""

    ACCEPT = "accept"
    RETRY = "retry"
    FAIL = "fail"


class PollAction(str, Enum):
    """What to do after a status check."""

    WAIT = "wait"
    SAVE = "save"
    FAIL = "fail"


@dataclass(frozen=True)
class SubmissionDecision:
    """Outcome of classifying a submission response."""

    action: SubmissionAction
    status_url: str | None = None
    wait: timedelta | None = None
    reason: str | None = None


@dataclass(frozen=True)
class PollDecision:
    """Outcome of classifying a status document."""

    action: PollAction
    status: TranscriptionStatus
    raw_status: str
    message: str | None = None


def retry_after(response: HttpResponseSnapshot, default_seconds: int = 60) -> timedelta:
    """Wait requested by a rate limited response.

    Only a non-negative integer number of seconds is honoured; anything else
    falls back to `default_seconds`.

    Args:
        response: The rate limited response
        default_seconds: Wait used when no usable header is present

    Returns:
        Time to wait before the next submission
    """
    for name in RETRY_AFTER_HEADERS:
        value = response.header(name)
        if not value or not value.strip():
            continue
        try:
            seconds = int(value.strip())
        except ValueError:
            continue
        if seconds >= 0:
            return timedelta(seconds=seconds)
    return timedelta(seconds=default_seconds)


def decide_submission(
    response: HttpResponseSnapshot, default_retry_after_seconds: int = 60
) -> SubmissionDecision:
    """Classify a submission response.

    Args:
        response: Snapshot returned by the submit activity
        default_retry_after_seconds: Wait used for rate limits without Retry-After

    Returns:
        ACCEPT with the polling URL, RETRY with a wait, or FAIL with a reason
    """
    if response.is_success:
        status_url = response.header(LOCATION_HEADER)
        if not status_url:
            return SubmissionDecision(
                action=SubmissionAction.FAIL,
                reason=(
                    "Transcription was accepted without a Location header. "
                    f"Status Code: {response.status_code}. Reason: {response.reason_phrase}"
                ),
            )
        return SubmissionDecision(action=SubmissionAction.ACCEPT, status_url=status_url)

    if response.status_code == TOO_MANY_REQUESTS:
        return SubmissionDecision(
            action=SubmissionAction.RETRY,
            wait=retry_after(response, default_retry_after_seconds),
        )

    return SubmissionDecision(
        action=SubmissionAction.FAIL,
        reason=(
            "Received a non-successful HTTP status code while submitting audio for "
            f"transcription. Status Code: {response.status_code}. "
            f"Reason: {response.reason_phrase}"
        ),
    )


def decide_poll(document: TranscriptionStatusDocument) -> PollDecision:
    """Classify a status document.

    NotStarted and Running keep polling, Succeeded saves, everything else fails.
    """
    status = document.state
    if status in (TranscriptionStatus.NOT_STARTED, TranscriptionStatus.RUNNING):
        action = PollAction.WAIT
    elif status == TranscriptionStatus.SUCCEEDED:
        action = PollAction.SAVE
    else:
        action = PollAction.FAIL

    return PollDecision(
        action=action,
        status=status,
        raw_status=document.status,
        message=document.status_message,
    )
