"""Tests for the password gate."""

from __future__ import annotations

import pytest

from conftest import ADMIN_PASSWORD
from serverpanel.config.settings import AuthConfig
from serverpanel.endpoint.auth import PasswordGate


class TestPasswordGate:
    def test_verify(self, gate: PasswordGate) -> None:
        assert gate.verify(ADMIN_PASSWORD)
        assert not gate.verify("wrong")
        assert not gate.verify("")

    def test_salt_differs_per_gate(self) -> None:
        a = PasswordGate(password="pw", iterations=1, key_length=32)
        b = PasswordGate(password="pw", iterations=1, key_length=32)
        assert a._reference != b._reference
        assert a.verify("pw") and b.verify("pw")

    def test_from_config(self) -> None:
        gate = PasswordGate.from_config(
            AuthConfig(admin_password="s3cret", iterations=5, key_length=32, salt_bytes=16)
        )
        assert gate.verify("s3cret")
        assert len(gate._reference) == 32
        assert len(gate._salt) == 16

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["GET", "HEAD", "OPTIONS", "get"])
    async def test_safe_methods_pass(self, gate: PasswordGate, method: str) -> None:
        assert await gate.admits(method, None)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["POST", "PUT", "DELETE", "PATCH"])
    async def test_mutating_methods_need_password(self, gate: PasswordGate, method: str) -> None:
        assert not await gate.admits(method, None)
        assert not await gate.admits(method, "wrong")
        assert await gate.admits(method, ADMIN_PASSWORD)
