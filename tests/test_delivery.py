# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sso

import json

import pytest
from conftest import API_URL, FakeSessionSigner, query_of

from coreason_sso.delivery import (
    SessionIssuer,
    popup_document,
    render_error,
    render_sso_id,
    render_token,
)
from coreason_sso.exceptions import InvalidStateError, SessionIssueError
from coreason_sso.models import LocalUser


def test_popup_document_shapes() -> None:
    assert 'window.opener.postMessage({"sso_id": "ext1"}, "*")' in popup_document("sso_id", "ext1")
    assert 'window.opener.postMessage({"token":"abc.def"}, "*")' in popup_document("token", "abc.def")
    assert "window.close()" in popup_document("token", "abc.def")


def test_popup_escapes_script_breakout() -> None:
    document = popup_document("sso_id", '</script><script>alert("x")</script>')
    assert document.count("</script>") == 1
    assert "\\u003c/script\\u003e" in document


def test_compatibility_redirects_carry_value() -> None:
    sso_id = render_sso_id(API_URL + "/", "ext 1&x", compatibility=True)
    assert sso_id.status_code == 302
    assert sso_id.location is not None
    assert sso_id.location.startswith(f"{API_URL}/@manage?")
    assert query_of(sso_id.location) == {"sso_id": "ext 1&x"}

    token = render_token(API_URL, "tok.en", compatibility=True)
    assert token.status_code == 302
    assert token.location == f"{API_URL}/@login?token=tok.en"


def test_both_modes_deliver_same_value() -> None:
    redirect = render_token(API_URL, "tok.en", compatibility=True)
    popup = render_token(API_URL, "tok.en", compatibility=False)

    assert redirect.location is not None
    assert popup.status_code == 200
    assert popup.media_type.startswith("text/html")
    assert json.dumps(query_of(redirect.location)["token"]) in popup.body


def test_render_error_shape() -> None:
    response = render_error(InvalidStateError("State parameter is invalid or expired"))
    assert response.status_code == 400
    assert response.media_type == "application/json"
    assert json.loads(response.body) == {
        "code": 400,
        "message": "State parameter is invalid or expired",
        "data": None,
    }


@pytest.mark.asyncio
async def test_session_issuer() -> None:
    signer = FakeSessionSigner()
    token = await SessionIssuer(signer).issue(LocalUser(username="alice"))
    assert token == "session-alice"
    assert signer.issued_for == ["alice"]


@pytest.mark.asyncio
async def test_session_issuer_wraps_signer_failure() -> None:
    class BrokenSigner:
        async def generate_token(self, user: LocalUser) -> str:
            raise RuntimeError("key missing")

    with pytest.raises(SessionIssueError, match="key missing") as exc_info:
        await SessionIssuer(BrokenSigner()).issue(LocalUser(username="alice"))
    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_session_issuer_rejects_empty_token() -> None:
    class EmptySigner:
        async def generate_token(self, user: LocalUser) -> str:
            return ""

    with pytest.raises(SessionIssueError):
        await SessionIssuer(EmptySigner()).issue(LocalUser(username="alice"))
