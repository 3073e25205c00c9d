"""
Tests for operator tokens and hold identity.
"""

from datetime import timedelta

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from cinema_pos.utils.auth import create_access_token, create_operator_token, verify_token
from cinema_pos.utils.dependencies import get_current_operator


def credentials(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


def test_each_terminal_token_has_its_own_holder():
    first = verify_token(create_operator_token("cashier-1", terminal="T1").access_token)
    second = verify_token(create_operator_token("cashier-1", terminal="T1").access_token)

    assert first.user_id == second.user_id == "cashier-1"
    assert first.terminal == "T1"
    assert first.holder != second.holder


def test_holder_falls_back_to_subject():
    token_data = verify_token(create_access_token({"sub": "kiosk-3"}, timedelta(minutes=5)))

    assert token_data.holder == "kiosk-3"


def test_invalid_and_expired_tokens():
    assert verify_token("not-a-token") is None
    assert verify_token(create_access_token({"sub": "cashier-1"}, timedelta(seconds=-1))) is None


async def test_current_operator():
    operator = await get_current_operator(credentials(create_operator_token("cashier-1", "T1").access_token))

    assert operator.user_id == "cashier-1"
    assert operator.terminal == "T1"
    assert operator.holder


async def test_current_operator_rejects_bad_token():
    with pytest.raises(HTTPException) as exc_info:
        await get_current_operator(credentials("garbage"))

    assert exc_info.value.status_code == 401
