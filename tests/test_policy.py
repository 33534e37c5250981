"""Tests for submission and polling decisions."""

from datetime import timedelta

import pytest

from core.models import HttpResponseSnapshot, TranscriptionStatus, TranscriptionStatusDocument
from core.policy import (
    PollAction,
    SubmissionAction,
    decide_poll,
    decide_submission,
    retry_after,
)


def _response(code: int, headers: dict | None = None, reason: str = "") -> HttpResponseSnapshot:
    return HttpResponseSnapshot(
        status_code=code,
        reason_phrase=reason,
        headers={k: [v] for k, v in (headers or {}).items()},
    )


class TestRetryAfter:
    """Tests for Retry-After parsing."""

    def test_integer_seconds(self):
        assert retry_after(_response(429, {"Retry-After": "5"})) == timedelta(seconds=5)

    def test_legacy_header_spelling(self):
        assert retry_after(_response(429, {"RetryAfter": "12"})) == timedelta(seconds=12)

    def test_whitespace_is_ignored(self):
        assert retry_after(_response(429, {"Retry-After": " 7 "})) == timedelta(seconds=7)

    def test_zero_is_honoured(self):
        assert retry_after(_response(429, {"Retry-After": "0"})) == timedelta(0)

    def test_absent_defaults_to_sixty(self):
        assert retry_after(_response(429)) == timedelta(seconds=60)

    @pytest.mark.parametrize(
        "value", ["", "soon", "1.5", "-3", "Wed, 21 Oct 2015 07:28:00 GMT"]
    )
    def test_unusable_value_defaults(self, value):
        assert retry_after(_response(429, {"Retry-After": value})) == timedelta(seconds=60)

    def test_custom_default(self):
        assert retry_after(_response(429), default_seconds=15) == timedelta(seconds=15)


class TestDecideSubmission:
    """Tests for submission classification."""

    @pytest.mark.parametrize("code", [200, 201, 202, 299])
    def test_success_accepts_with_location(self, code):
        decision = decide_submission(_response(code, {"Location": "https://x/status/1"}))

        assert decision.action == SubmissionAction.ACCEPT
        assert decision.status_url == "https://x/status/1"

    def test_success_without_location_fails(self):
        decision = decide_submission(_response(202, reason="Accepted"))

        assert decision.action == SubmissionAction.FAIL
        assert "Location" in decision.reason

    def test_rate_limit_retries(self):
        decision = decide_submission(_response(429, {"Retry-After": "5"}))

        assert decision.action == SubmissionAction.RETRY
        assert decision.wait == timedelta(seconds=5)

    def test_rate_limit_uses_default_wait(self):
        decision = decide_submission(_response(429), default_retry_after_seconds=30)

        assert decision.wait == timedelta(seconds=30)

    @pytest.mark.parametrize("code", [400, 401, 404, 500, 503, 302])
    def test_other_statuses_fail(self, code):
        decision = decide_submission(_response(code, reason="Nope"))

        assert decision.action == SubmissionAction.FAIL
        assert f"Status Code: {code}" in decision.reason
        assert "Reason: Nope" in decision.reason


class TestDecidePoll:
    """Tests for status classification."""

    @pytest.mark.parametrize("status", ["NotStarted", "Running", "running", "NOTSTARTED"])
    def test_in_progress_waits(self, status):
        decision = decide_poll(TranscriptionStatusDocument(status=status))

        assert decision.action == PollAction.WAIT
        assert decision.raw_status == status

    def test_succeeded_saves(self):
        decision = decide_poll(TranscriptionStatusDocument(status="succeeded"))

        assert decision.action == PollAction.SAVE
        assert decision.status == TranscriptionStatus.SUCCEEDED

    def test_failed_carries_message(self):
        decision = decide_poll(
            TranscriptionStatusDocument(status="Failed", status_message="Bad audio")
        )

        assert decision.action == PollAction.FAIL
        assert decision.message == "Bad audio"

    @pytest.mark.parametrize("status", ["Cancelled", "", "Other"])
    def test_unrecognised_status_fails(self, status):
        assert decide_poll(TranscriptionStatusDocument(status=status)).action == PollAction.FAIL
