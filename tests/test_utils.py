from datetime import timedelta

import pytest

from utils import (
    create_session_token,
    decode_session_token,
    format_remaining,
    validate_contest_code,
    validate_participant_key,
)


class TestValidation:
    @pytest.mark.parametrize("code", ["arenacnst-2025", "arenacnst-0001"])
    def test_valid_contest_codes(self, code):
        assert validate_contest_code(code)

    @pytest.mark.parametrize("code", ["", "arenacnst-25", "arenacnst-20255", "ARENACNST-2025", "contest-2025", None])
    def test_invalid_contest_codes(self, code):
        assert not validate_contest_code(code)

    def test_participant_key_minimum_length(self):
        assert validate_participant_key("PRN001")
        assert not validate_participant_key("PRN01")
        assert not validate_participant_key("   PRN01  ")
        assert not validate_participant_key("")


class TestFormatRemaining:
    def test_minutes_and_seconds(self):
        assert format_remaining(timedelta(minutes=59, seconds=5)) == "59:05"

    def test_long_contests_keep_counting_minutes(self):
        assert format_remaining(timedelta(minutes=90)) == "90:00"

    def test_negative_clamps_to_zero(self):
        assert format_remaining(timedelta(seconds=-3)) == "00:00"


class TestSessionToken:
    def test_round_trip(self):
        token = create_session_token("session-1", "PRN2025001")

        assert decode_session_token(token) == "session-1"

    def test_expired_token_rejected(self):
        token = create_session_token("session-1", "PRN2025001", expires_delta=timedelta(seconds=-1))

        assert decode_session_token(token) is None

    def test_garbage_rejected(self):
        assert decode_session_token("not-a-token") is None
