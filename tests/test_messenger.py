"""
Unit tests for messenger.py - Send API delivery with retries.
"""

import asyncio
import json
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import httpx

from messenger import MessengerClient
from tests.test_logger import test_logger

API_URL = "https://graph.example.test/v2.6/me/messages"


def make_client(handler, max_retries=3):
    return MessengerClient(
        page_access_token="page_token",
        api_url=API_URL,
        max_retries=max_retries,
        retry_delay=0,
        transport=httpx.MockTransport(handler)
    )


async def send_and_close(client, recipient, text):
    try:
        return await client.send_text(recipient, text)
    finally:
        await client.close()


class TestMessengerClient:
    """Test suite for MessengerClient."""

    def setup_method(self):
        test_logger.log_section("TESTING: messenger.py - MessengerClient")

    def test_send_text_success(self):
        test_logger.log_test_start("messenger.py", "send_text", "success")

        try:
            requests = []

            def handler(request):
                requests.append(request)
                return httpx.Response(200, json={"recipient_id": "123", "message_id": "mid.1"})

            sent = asyncio.run(send_and_close(make_client(handler), "123", "Xin chào"))

            assert sent is True
            assert len(requests) == 1
            request = requests[0]
            assert request.method == "POST"
            assert request.url.params["access_token"] == "page_token"
            assert json.loads(request.content) == {
                "recipient": {"id": "123"},
                "message": {"text": "Xin chào"}
            }

            test_logger.log_test_pass("messenger.py", "send_text", "success")
        except Exception as e:
            test_logger.log_test_fail("messenger.py", "send_text", "success", str(e))
            raise

    def test_retries_until_success(self):
        test_logger.log_test_start("messenger.py", "send_text", "retry_then_success")

        try:
            calls = []

            def handler(request):
                calls.append(request)
                if len(calls) < 3:
                    return httpx.Response(500, json={"error": {"message": "temporary"}})
                return httpx.Response(200, json={"message_id": "mid.3"})

            assert asyncio.run(send_and_close(make_client(handler), "123", "hi")) is True
            assert len(calls) == 3

            test_logger.log_test_pass("messenger.py", "send_text", "retry_then_success")
        except Exception as e:
            test_logger.log_test_fail("messenger.py", "send_text", "retry_then_success", str(e))
            raise

    def test_gives_up_after_max_retries(self):
        test_logger.log_test_start("messenger.py", "send_text", "gives_up")

        try:
            calls = []

            def handler(request):
                calls.append(request)
                return httpx.Response(400, json={"error": {"message": "Invalid OAuth access token"}})

            assert asyncio.run(send_and_close(make_client(handler), "123", "hi")) is False
            assert len(calls) == 3

            test_logger.log_test_pass("messenger.py", "send_text", "gives_up")
        except Exception as e:
            test_logger.log_test_fail("messenger.py", "send_text", "gives_up", str(e))
            raise

    def test_transport_errors_do_not_escape(self):
        test_logger.log_test_start("messenger.py", "send_text", "transport_error")

        try:
            def handler(request):
                raise httpx.ConnectError("connection refused", request=request)

            assert asyncio.run(send_and_close(make_client(handler, max_retries=2), "123", "hi")) is False

            test_logger.log_test_pass("messenger.py", "send_text", "transport_error")
        except Exception as e:
            test_logger.log_test_fail("messenger.py", "send_text", "transport_error", str(e))
            raise

    def test_non_json_error_body(self):
        test_logger.log_test_start("messenger.py", "send_text", "non_json_body")

        try:
            def handler(request):
                return httpx.Response(502, text="Bad Gateway")

            assert asyncio.run(send_and_close(make_client(handler, max_retries=1), "123", "hi")) is False

            test_logger.log_test_pass("messenger.py", "send_text", "non_json_body")
        except Exception as e:
            test_logger.log_test_fail("messenger.py", "send_text", "non_json_body", str(e))
            raise
