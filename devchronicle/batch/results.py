"""
Parsing of batch output and error files.

Both files are newline-delimited JSON, one object per request, correlated
by ``custom_id``. Custom ids are matched case-insensitively.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

MISSING_RESPONSE = "Missing response payload."
MISSING_STATUS_CODE = "Missing response status code."
MISSING_BODY = "Missing response body."
NO_CHOICES = "No choices in response body."
NO_MESSAGE = "No message in first choice."
NO_CONTENT = "No content in first choice message."
NO_ERROR_DETAILS = "Batch item failed without error details."


@dataclass
class BatchResults:
    """Outputs and errors keyed by lowercased custom id."""
    outputs: Dict[str, str] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    def output_for(self, custom_id: str) -> Optional[str]:
        return self.outputs.get(custom_id.lower())

    def error_for(self, custom_id: str) -> Optional[str]:
        return self.errors.get(custom_id.lower())

    @property
    def is_empty(self) -> bool:
        return not self.outputs and not self.errors


def _iter_lines(content: Optional[str]):
    for number, raw in enumerate((content or "").splitlines(), start=1):
        line = raw.strip()
        if not line:
            continue
        try:
            data = json.loads(line)
        except ValueError:
            logger.warning(f"Skipping malformed batch result line {number}")
            continue
        if not isinstance(data, dict):
            continue
        custom_id = data.get("custom_id")
        if not custom_id:
            continue
        yield str(custom_id), data


def _error_text(error: Any) -> str:
    if isinstance(error, dict):
        message = error.get("message") or error.get("code")
        if message:
            return str(message)
        return json.dumps(error)
    text = str(error).strip()
    return text or NO_ERROR_DETAILS


def parse_output_line(data: Dict[str, Any]):
    """
    Classify one output-file line.

    Returns:
        (content, None) on success or (None, reason) on failure
    """
    if data.get("error") is not None:
        return None, _error_text(data["error"])

    response = data.get("response")
    if not isinstance(response, dict):
        return None, MISSING_RESPONSE

    status_code = response.get("status_code")
    if status_code is None:
        return None, MISSING_STATUS_CODE

    body = response.get("body")
    try:
        status = int(status_code)
    except (TypeError, ValueError):
        return None, MISSING_STATUS_CODE

    if status < 200 or status >= 300:
        if isinstance(body, dict) and body.get("error") is not None:
            return None, _error_text(body["error"])
        return None, f"HTTP {status} returned in batch item response."

    if not isinstance(body, dict):
        return None, MISSING_BODY

    choices = body.get("choices")
    if not isinstance(choices, list) or not choices:
        return None, NO_CHOICES

    message = choices[0].get("message") if isinstance(choices[0], dict) else None
    if not isinstance(message, dict):
        return None, NO_MESSAGE

    content = message.get("content")
    if content is None:
        return None, NO_CONTENT

    return str(content), None


def parse_output_jsonl(content: Optional[str], results: Optional[BatchResults] = None) -> BatchResults:
    """Parse an output file into outputs and per-line errors."""
    results = results or BatchResults()
    for custom_id, data in _iter_lines(content):
        text, error = parse_output_line(data)
        key = custom_id.lower()
        if error is None:
            results.outputs[key] = text
            results.errors.pop(key, None)
        else:
            results.errors[key] = error
    return results


def parse_error_jsonl(content: Optional[str], results: Optional[BatchResults] = None) -> BatchResults:
    """Parse an error file; ids that already have an output are left alone."""
    results = results or BatchResults()
    for custom_id, data in _iter_lines(content):
        key = custom_id.lower()
        if key in results.outputs:
            continue
        error = data.get("error")
        if error is None and isinstance(data.get("response"), dict):
            _, error = parse_output_line(data)
        results.errors[key] = _error_text(error) if error is not None else NO_ERROR_DETAILS
    return results
