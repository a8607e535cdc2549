"""Tests for shared infrastructure: breaker, hashing, auth and email"""
import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import jwt
import pytest

from core.breaker import CircuitBreaker, CircuitOpenError
from core.credentials import SmtpCredentials
from core.exceptions import AuthenticationError, ValidationError
from core.request_context import client_ip
from core.sensitive_hash import SensitiveHash
from core.settings import settings
from core.validators import decode_http_access_token, extract_bearer_token, jwt_protect
from email_notify.email_service import EmailService


def fake_request(headers=None, cookies=None, host="10.0.0.1"):
    return SimpleNamespace(
        headers=headers or {},
        cookies=cookies or {},
        client=SimpleNamespace(host=host) if host else None,
    )


class TestCircuitBreaker:
    @pytest.mark.asyncio
    async def test_opens_after_threshold(self):
        breaker = CircuitBreaker(name="test", failure_threshold=2, base_recovery_time=60)
        failing = AsyncMock(side_effect=ConnectionError("down"))

        for _ in range(2):
            with pytest.raises(ConnectionError):
                await breaker.call(failing)

        assert breaker.state == "OPEN"
        with pytest.raises(CircuitOpenError):
            await breaker.call(failing)
        assert failing.await_count == 2

    @pytest.mark.asyncio
    async def test_ignored_errors_do_not_trip(self):
        breaker = CircuitBreaker(name="test", failure_threshold=1, ignore=(ValidationError,))

        with pytest.raises(ValidationError):
            await breaker.call(AsyncMock(side_effect=ValidationError("bad input")))

        assert breaker.state == "CLOSED"
        assert breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_half_open_success_closes(self):
        breaker = CircuitBreaker(name="test", failure_threshold=1, base_recovery_time=0)
        with pytest.raises(ConnectionError):
            await breaker.call(AsyncMock(side_effect=ConnectionError("down")))

        assert await breaker.call(AsyncMock(return_value="ok")) == "ok"
        assert breaker.state == "CLOSED"


class TestSensitiveHash:
    def test_token_hash_is_keyed_and_stable(self):
        first = SensitiveHash.hash_token("abc")

        assert first == SensitiveHash.hash_token("abc")
        assert first != SensitiveHash.hash_token("abd")
        with patch.object(settings, "SECRET_KEY", "another-key"):
            assert SensitiveHash.hash_token("abc") != first

    def test_ip_hash(self):
        assert SensitiveHash.hash_ip(None) is None
        assert SensitiveHash.hash_ip("1.2.3.4") == SensitiveHash.hash_ip(" 1.2.3.4 ")
        assert len(SensitiveHash.hash_ip("1.2.3.4")) == 64

    def test_missing_key_fails_loudly(self):
        with patch.object(settings, "SECRET_KEY", None):
            with pytest.raises(RuntimeError):
                SensitiveHash.hash_token("abc")


class TestRequestContext:
    def test_forwarded_for_wins(self):
        request = fake_request(headers={"x-forwarded-for": "203.0.113.9, 10.0.0.2"})

        assert client_ip(request) == "203.0.113.9"

    def test_falls_back_to_peer(self):
        assert client_ip(fake_request()) == "10.0.0.1"
        assert client_ip(fake_request(host=None)) is None


class TestJwtAuth:
    def _token(self, payload):
        return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

    def test_decode(self):
        user_id = uuid.uuid4()

        assert decode_http_access_token(self._token({"sub": str(user_id)})) == user_id

    def test_missing_subject(self):
        with pytest.raises(jwt.InvalidTokenError):
            decode_http_access_token(self._token({"role": "tenant"}))

    def test_header_beats_cookie(self):
        request = fake_request(
            headers={"Authorization": "Bearer header-token"},
            cookies={"access_token": "cookie-token"},
        )

        assert extract_bearer_token(request) == "header-token"
        assert extract_bearer_token(fake_request(cookies={"access_token": "c"})) == "c"

    @pytest.mark.asyncio
    async def test_bad_signature(self):
        forged = jwt.encode({"sub": str(uuid.uuid4())}, "not-the-key", algorithm="HS256")

        with pytest.raises(AuthenticationError):
            await jwt_protect(fake_request(headers={"Authorization": f"Bearer {forged}"}))


class TestEmailService:
    @pytest.mark.asyncio
    async def test_unconfigured_smtp_skips(self):
        credentials = MagicMock()
        credentials.get.return_value = None

        sent = await EmailService(credentials=credentials).send_owner_authorization_email(
            "owner@example.com", None, "Tina", "1 Main St", "tok"
        )

        assert sent is False

    @pytest.mark.asyncio
    async def test_authorization_email_contents(self):
        credentials = MagicMock()
        credentials.get.return_value = SmtpCredentials(
            host="smtp.test", port=587, username="u", password="p", use_tls=True, sender="Novy <n@novy.test>"
        )

        with patch("email_notify.email_service.aiosmtplib.send", new_callable=AsyncMock) as send:
            sent = await EmailService(
                credentials=credentials, breaker=CircuitBreaker(name="smtp-test")
            ).send_owner_authorization_email(
                "owner@example.com", "Olive <Owner>", "Tina", "1 Main St", "raw-token-123"
            )

        assert sent is True
        message = send.call_args.args[0]
        assert message["To"] == "owner@example.com"
        html = message.get_payload()[0].get_payload(decode=True).decode()
        assert "http://novy.test/authorize/raw-token-123" in html
        assert "Olive &lt;Owner&gt;" in html
        assert send.call_args.kwargs["hostname"] == "smtp.test"

    @pytest.mark.asyncio
    async def test_smtp_failure_returns_false(self):
        credentials = MagicMock()
        credentials.get.return_value = SmtpCredentials(
            host="smtp.test", port=587, username=None, password=None, use_tls=False, sender="n@novy.test"
        )

        with patch(
            "email_notify.email_service.aiosmtplib.send",
            new_callable=AsyncMock,
            side_effect=OSError("connection refused"),
        ):
            sent = await EmailService(
                credentials=credentials, breaker=CircuitBreaker(name="smtp-test")
            ).send_owner_authorization_email("owner@example.com", None, "Tina", "1 Main St", "t")

        assert sent is False
