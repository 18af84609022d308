"""
Tests for batch output/error file parsing and batch wire models.
"""

import json

import pytest

from devchronicle.batch.client import BatchRequestLine, BatchSnapshot
from devchronicle.batch.results import (
    MISSING_RESPONSE,
    NO_CHOICES,
    NO_CONTENT,
    NO_ERROR_DETAILS,
    parse_error_jsonl,
    parse_output_jsonl,
    parse_output_line,
)
from devchronicle.models.batch import BatchStatus


def ok_body(content):
    return {"status_code": 200, "body": {"choices": [{"message": {"content": content}}]}}


class TestParseOutputLine:
    """Tests for single output lines."""

    def test_success(self):
        assert parse_output_line({"response": ok_body("- a")}) == ("- a", None)

    def test_top_level_error(self):
        assert parse_output_line({"error": {"message": "boom"}}) == (None, "boom")

    def test_missing_response(self):
        assert parse_output_line({}) == (None, MISSING_RESPONSE)

    def test_http_error_uses_body_error(self):
        line = {"response": {"status_code": 500, "body": {"error": {"code": "server_error"}}}}
        assert parse_output_line(line) == (None, "server_error")

    def test_http_error_without_details(self):
        content, error = parse_output_line({"response": {"status_code": 503, "body": {}}})
        assert content is None
        assert error == "HTTP 503 returned in batch item response."

    def test_no_choices(self):
        line = {"response": {"status_code": 200, "body": {"choices": []}}}
        assert parse_output_line(line) == (None, NO_CHOICES)

    def test_null_content(self):
        line = {"response": {"status_code": 200, "body": {"choices": [{"message": {"content": None}}]}}}
        assert parse_output_line(line) == (None, NO_CONTENT)


class TestParseFiles:
    """Tests for whole-file parsing."""

    def test_output_file_keys_are_case_insensitive(self):
        content = "\n".join([
            json.dumps({"custom_id": "Session:A", "response": ok_body("- one")}),
            "not json",
            "",
            json.dumps({"custom_id": "session:b", "error": {"message": "bad"}}),
        ])
        results = parse_output_jsonl(content)
        assert results.output_for("session:a") == "- one"
        assert results.error_for("SESSION:B") == "bad"

    def test_error_file_never_overrides_output(self):
        results = parse_output_jsonl(json.dumps({"custom_id": "x", "response": ok_body("- kept")}))
        parse_error_jsonl("\n".join([
            json.dumps({"custom_id": "x", "error": {"message": "late error"}}),
            json.dumps({"custom_id": "y"}),
        ]), results)
        assert results.output_for("x") == "- kept"
        assert results.error_for("x") is None
        assert results.error_for("y") == NO_ERROR_DETAILS

    def test_empty_files(self):
        assert parse_output_jsonl(None).is_empty
        assert parse_error_jsonl("").is_empty


class TestWireModels:
    """Tests for pydantic batch models."""

    def test_snapshot_ignores_unknown_fields(self):
        snapshot = BatchSnapshot.model_validate({
            "id": "batch_1",
            "status": "in_progress",
            "object": "batch",
            "request_counts": {"total": 3},
        })
        assert snapshot.id == "batch_1"
        assert BatchStatus.from_provider(snapshot.status) is BatchStatus.RUNNING

    def test_snapshot_last_error(self):
        snapshot = BatchSnapshot(id="b", errors={"data": [{"message": "line 1 invalid"}, {"code": "x"}]})
        assert snapshot.last_error == "line 1 invalid; x"
        assert BatchSnapshot(id="b").last_error is None

    def test_request_line_shape(self):
        line = BatchRequestLine.for_prompt("cid", "gpt-4o-mini", "master", "prompt", 300)
        data = json.loads(line.model_dump_json())
        assert data["method"] == "POST"
        assert data["body"]["temperature"] == 0.2
        assert data["body"]["max_completion_tokens"] == 300
        assert [m["role"] for m in data["body"]["messages"]] == ["developer", "user"]

    @pytest.mark.parametrize("provider_status,expected", [
        ("validating", BatchStatus.SUBMITTING),
        ("in_progress", BatchStatus.RUNNING),
        ("finalizing", BatchStatus.APPLYING),
        ("completed", BatchStatus.COMPLETED),
        ("expired", BatchStatus.FAILED),
        ("cancelling", BatchStatus.CANCELED),
        ("something_new", BatchStatus.QUEUED),
    ])
    def test_status_mapping(self, provider_status, expected):
        assert BatchStatus.from_provider(provider_status) is expected


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
