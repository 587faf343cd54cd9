"""
Test suite for OpenAIBatchGateway.

System role: Verification of batch submission, status mapping, result
parsing and active-batch counting against a mocked OpenAI client
"""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from batchgen.boundary.gateway.base import BatchRequest
from batchgen.boundary.gateway.openai_batch_gateway import OpenAIBatchGateway, parse_result_line
from batchgen.configs.gateway import GatewaySettings
from batchgen.core.exceptions import GatewayError, GatewaySubmissionError


def output_line(custom_id: str, content: str | None = "text", status_code: int = 200) -> str:
    return json.dumps(
        {
            "custom_id": custom_id,
            "response": {
                "status_code": status_code,
                "body": {"choices": [{"message": {"content": content}}]},
            },
        }
    )


def batch(ref: str = "batch_1", status: str = "completed", **fields) -> SimpleNamespace:
    defaults = {
        "id": ref,
        "status": status,
        "request_counts": SimpleNamespace(completed=2, failed=1, total=3),
        "output_file_id": "file_out",
        "error_file_id": None,
    }
    defaults.update(fields)
    return SimpleNamespace(**defaults)


@pytest.fixture
def client() -> MagicMock:
    client = MagicMock()
    client.files.create = AsyncMock(return_value=SimpleNamespace(id="file_in"))
    client.files.content = AsyncMock()
    client.batches.create = AsyncMock(return_value=batch(status="validating"))
    client.batches.retrieve = AsyncMock(return_value=batch())
    client.batches.list = AsyncMock()
    return client


@pytest.fixture
def gateway(client) -> OpenAIBatchGateway:
    return OpenAIBatchGateway(GatewaySettings(api_key="test", request_max_attempts=1), client=client)


class TestParseResultLine:
    def test_should_extract_message_content(self) -> None:
        row = parse_result_line(output_line("item-1", "Hello"))

        assert row.custom_id == "item-1"
        assert row.content == "Hello"
        assert row.ok

    def test_should_report_request_error(self) -> None:
        line = json.dumps({"custom_id": "item-2", "error": {"message": "rate limited"}})

        row = parse_result_line(line)

        assert row.error == "rate limited"
        assert not row.ok

    def test_should_report_non_200_response(self) -> None:
        row = parse_result_line(output_line("item-3", status_code=500))

        assert row.error == "HTTP 500"

    def test_should_report_empty_content(self) -> None:
        assert parse_result_line(output_line("item-4", "")).error == "empty response content"

    @pytest.mark.parametrize("line", ["", "   ", "{not json", json.dumps({"response": {}})])
    def test_should_skip_blank_malformed_and_unkeyed_lines(self, line) -> None:
        assert parse_result_line(line) is None


class TestSubmitBatch:
    async def test_should_upload_jsonl_and_create_batch(self, gateway, client) -> None:
        # Arrange
        requests = [
            BatchRequest("item-1", {"model": "m", "messages": []}),
            BatchRequest("item-2", {"model": "m", "messages": []}),
        ]

        # Act
        ref = await gateway.submit_batch(1, requests, {"job_id": "j1", "phase": "1"})

        # Assert
        assert ref == "batch_1"
        _, payload, _ = client.files.create.call_args.kwargs["file"]
        lines = [json.loads(line) for line in payload.decode("utf-8").splitlines()]
        assert [line["custom_id"] for line in lines] == ["item-1", "item-2"]
        assert all(line["url"] == "/v1/chat/completions" for line in lines)
        create_kwargs = client.batches.create.call_args.kwargs
        assert create_kwargs["input_file_id"] == "file_in"
        assert create_kwargs["completion_window"] == "24h"
        assert create_kwargs["metadata"] == {"job_id": "j1", "phase": "1"}

    async def test_empty_batch_should_be_refused(self, gateway, client) -> None:
        with pytest.raises(GatewaySubmissionError):
            await gateway.submit_batch(2, [])

        client.files.create.assert_not_called()

    async def test_provider_refusal_should_raise_submission_error(self, gateway, client) -> None:
        # Arrange
        request = httpx.Request("POST", "https://api.openai.com/v1/batches")
        client.batches.create.side_effect = openai.BadRequestError(
            "quota exceeded",
            response=httpx.Response(400, request=request),
            body=None,
        )

        # Act / Assert
        with pytest.raises(GatewaySubmissionError) as exc_info:
            await gateway.submit_batch(1, [BatchRequest("item-1")])

        assert exc_info.value.details["phase"] == 1
        client.batches.create.assert_awaited_once()


class TestGetStatus:
    async def test_should_map_provider_batch(self, gateway) -> None:
        status = await gateway.get_status("batch_1")

        assert status.status == "completed"
        assert status.is_success
        assert status.request_counts.to_dict() == {"completed": 2, "failed": 1, "total": 3}
        assert status.output_file_id == "file_out"

    async def test_missing_counts_should_stay_none(self, gateway, client) -> None:
        client.batches.retrieve.return_value = batch(status="validating", request_counts=None)

        status = await gateway.get_status("batch_1")

        assert status.request_counts is None
        assert not status.is_terminal

    async def test_provider_error_should_raise_gateway_error(self, gateway, client) -> None:
        client.batches.retrieve.side_effect = openai.OpenAIError("boom")

        with pytest.raises(GatewayError):
            await gateway.get_status("batch_1")


class TestDownloadResults:
    async def test_should_read_output_and_error_files(self, gateway, client) -> None:
        # Arrange
        client.batches.retrieve.return_value = batch(error_file_id="file_err")
        error_line = json.dumps({"custom_id": "item-3", "error": {"message": "refused"}})
        files = {
            "file_out": "\n".join([output_line("item-1", "a"), output_line("item-2", "b")]),
            "file_err": error_line + "\n",
        }
        client.files.content.side_effect = lambda file_id: SimpleNamespace(text=files[file_id])

        # Act
        rows = await gateway.download_results("batch_1")

        # Assert
        assert [(row.custom_id, row.ok) for row in rows] == [
            ("item-1", True),
            ("item-2", True),
            ("item-3", False),
        ]


class TestCountActiveBatches:
    async def test_should_count_non_terminal_batches(self, gateway, client) -> None:
        client.batches.list.return_value = SimpleNamespace(
            data=[
                batch(status="validating"),
                batch(status="in_progress"),
                batch(status="finalizing"),
                batch(status="completed"),
                batch(status="failed"),
            ]
        )

        assert await gateway.count_active_batches() == 3
