"""Tests for the outbound webhook envelope."""

from __future__ import annotations

from replykit.providers.webhook.envelope import ENVELOPE_TEMPLATE, MUTABLE_FIELDS, build_envelope


class TestBuildEnvelope:
    def test_sets_per_request_fields(self) -> None:
        envelope = build_envelope("hello", "verified_user_1", "https://portal.example.com/cb")

        assert envelope["text"] == "hello"
        assert envelope["user_id"] == "verified_user_1"
        assert envelope["response_url"] == "https://portal.example.com/cb"

    def test_fixed_fields_untouched(self) -> None:
        envelope = build_envelope("hello", "u1", "https://portal.example.com/cb")

        for key, value in ENVELOPE_TEMPLATE.items():
            if key not in MUTABLE_FIELDS:
                assert envelope[key] == value
        assert envelope["command"] == "/ask"
        assert set(envelope) == set(ENVELOPE_TEMPLATE)

    def test_sends_do_not_share_state(self) -> None:
        first = build_envelope("one", "u1", "https://a.example.com/cb")
        first["metadata"]["leaked"] = True
        second = build_envelope("two", "u2", "https://b.example.com/cb")

        assert "leaked" not in second["metadata"]
        assert "leaked" not in ENVELOPE_TEMPLATE["metadata"]
        assert ENVELOPE_TEMPLATE["text"] == ""
