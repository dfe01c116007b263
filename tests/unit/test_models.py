"""Unit tests for interception data models."""

import pytest
from pydantic import TypeAdapter, ValidationError

from netwatch.models import (
    Abort,
    Allow,
    Decision,
    Delay,
    FailureEntry,
    FailureKind,
    Fulfill,
    RequestEntry,
    RequestView,
    ResourceType,
    ResponseEntry,
    ResponseView,
)


class TestResourceType:
    """Tests for ResourceType mapping."""

    def test_known_types(self):
        assert ResourceType.from_driver("image") == ResourceType.IMAGE
        assert ResourceType.from_driver("XHR") == ResourceType.XHR

    def test_unknown_types_map_to_other(self):
        assert ResourceType.from_driver("ping") == ResourceType.OTHER
        assert ResourceType.from_driver(None) == ResourceType.OTHER
        assert ResourceType.from_driver("") == ResourceType.OTHER


class TestRequestView:
    """Tests for RequestView."""

    def test_headers_from_dict_keep_order_and_case(self):
        view = RequestView(
            request_id="r1",
            url="https://example.com/",
            headers={"User-Agent": "ua", "Accept": "*/*"},
        )

        assert view.headers == (("User-Agent", "ua"), ("Accept", "*/*"))

    def test_headers_from_pairs_keep_duplicates(self):
        view = RequestView(
            request_id="r1",
            url="https://example.com/",
            headers=[("Cookie", "a=1"), ("Cookie", "b=2")],
        )

        assert len(view.headers) == 2

    def test_header_lookup_is_case_insensitive(self):
        view = RequestView(request_id="r1", url="https://example.com/", headers={"Content-Type": "text/html"})

        assert view.header("content-type") == "text/html"
        assert view.header("CONTENT-TYPE") == "text/html"
        assert view.header("accept") is None

    def test_view_is_immutable(self):
        view = RequestView(request_id="r1", url="https://example.com/")

        with pytest.raises(ValidationError):
            view.url = "https://other.example/"

    def test_post_data_decoding(self):
        view = RequestView(request_id="r1", url="https://example.com/", method="POST", body=b'{"a":1}')

        assert view.post_data == '{"a":1}'
        assert RequestView(request_id="r2", url="https://example.com/").post_data is None

    def test_defaults(self):
        view = RequestView(request_id="r1", url="https://example.com/")

        assert view.method == "GET"
        assert view.resource_type == ResourceType.OTHER
        assert view.body is None
        assert view.observed_at is not None


class TestDecisions:
    """Tests for the decision union."""

    def test_terminal_flags(self):
        assert Allow().is_terminal
        assert Abort().is_terminal
        assert Fulfill().is_terminal
        assert not Delay(duration_ms=10).is_terminal

    def test_abort_default_reason(self):
        assert Abort().reason == "failed"

    def test_allow_overrides(self):
        assert not Allow().has_overrides
        assert Allow(header_overrides={"X-Test": "1"}).has_overrides
        assert Allow(body_override="x").has_overrides

    def test_discriminated_union(self):
        adapter = TypeAdapter(Decision)

        decision = adapter.validate_python({"action": "abort", "reason": "blocked"})
        assert isinstance(decision, Abort)
        assert decision.reason == "blocked"

        decision = adapter.validate_python({"action": "delay", "duration_ms": 250})
        assert isinstance(decision, Delay)

    def test_unknown_action_rejected(self):
        with pytest.raises(ValidationError):
            TypeAdapter(Decision).validate_python({"action": "redirect"})

    def test_invalid_values_rejected(self):
        with pytest.raises(ValidationError):
            Delay(duration_ms=-1)

        with pytest.raises(ValidationError):
            Fulfill(status=700)

    def test_fulfill_body_text(self):
        assert Fulfill(body=b"hello").body_text == "hello"
        assert Fulfill(body="hello").body_text == "hello"


class TestLogEntries:
    """Tests for audit log entries."""

    def test_request_entry_from_view(self):
        view = RequestView(
            request_id="r1",
            url="https://example.com/api",
            method="POST",
            headers={"Content-Type": "application/json"},
            body=b'{"q":1}',
            resource_type="fetch",
        )

        entry = RequestEntry.from_view(view)

        assert entry.request_id == "r1"
        assert entry.headers == {"Content-Type": "application/json"}
        assert entry.post_data == '{"q":1}'
        assert entry.resource_type == ResourceType.FETCH

    def test_response_entry_from_view(self):
        view = ResponseView(request_id="r1", url="https://example.com/", status=404, headers={"Server": "x"})

        entry = ResponseEntry.from_view(view)

        assert entry.status == 404
        assert entry.headers == {"Server": "x"}

    def test_entries_serialize_to_json(self):
        entry = FailureEntry(kind=FailureKind.RESOLUTION_TIMEOUT, message="late", tie_break=3)

        data = entry.model_dump(mode="json")

        assert data["kind"] == "resolution_timeout"
        assert data["tie_break"] == 3
        assert isinstance(data["timestamp"], str)
