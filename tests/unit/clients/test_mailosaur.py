"""Unit tests for the Mailosaur OTP client."""

from __future__ import annotations

import json

import httpx
import pytest

from exchange_pool.clients.mailosaur import MailosaurClient, extract_otp
from exchange_pool.config import MailosaurConfig, Settings
from exchange_pool.errors import CreationError, CreationTimeoutError


@pytest.fixture
def config() -> MailosaurConfig:
    return MailosaurConfig(api_key="key", server_id="srv1", timeout_seconds=5)


class TestExtractOtp:
    def test_from_subject(self):
        assert extract_otp({"subject": "Your code is 482913"}) == "482913"

    def test_from_extracted_codes(self):
        message = {"subject": "Verify your e-mail", "text": {"codes": [{"value": "55123"}]}}

        assert extract_otp(message) == "55123"

    def test_from_body(self):
        message = {
            "subject": "Verify your e-mail",
            "text": {"body": "Use this code to confirm your email address: 771204"},
        }

        assert extract_otp(message) == "771204"

    def test_no_code(self):
        assert extract_otp({"subject": "Welcome", "text": {"body": "Hello there"}}) is None


class TestClient:
    def test_requires_credentials(self):
        with pytest.raises(ValueError):
            MailosaurClient(MailosaurConfig())

    def test_built_from_settings(self, monkeypatch):
        monkeypatch.setenv("EXPOOL_MAILOSAUR__API_KEY", "env-key")
        monkeypatch.setenv("EXPOOL_MAILOSAUR__SERVER_ID", "envsrv")

        client = MailosaurClient(Settings().mailosaur)

        assert client.create_email().endswith("@envsrv.mailosaur.net")

    def test_create_email(self, config):
        email = MailosaurClient(config).create_email("swap")

        assert email.startswith("swap-")
        assert email.endswith("@srv1.mailosaur.net")

    async def test_wait_for_otp(self, config):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"subject": "Your code is 123456"})

        client = MailosaurClient(config, transport=httpx.MockTransport(handler))

        assert await client.wait_for_otp("a@srv1.mailosaur.net") == "123456"

        request = seen[0]
        assert request.url.path == "/api/messages/await"
        assert request.url.params["server"] == "srv1"
        assert request.url.params["timeout"] == "5000"
        assert json.loads(request.content) == {"sentTo": "a@srv1.mailosaur.net"}
        assert request.headers["authorization"].startswith("Basic ")

    async def test_error_status(self, config):
        client = MailosaurClient(
            config,
            transport=httpx.MockTransport(lambda request: httpx.Response(401, text="bad key")),
        )

        with pytest.raises(CreationError, match="401"):
            await client.wait_for_message("a@srv1.mailosaur.net")

    async def test_timeout(self, config):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        client = MailosaurClient(config, transport=httpx.MockTransport(handler))

        with pytest.raises(CreationTimeoutError):
            await client.wait_for_message("a@srv1.mailosaur.net")
