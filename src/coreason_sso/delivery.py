# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sso

"""
Session issuing and result delivery.

Compatibility mode redirects to a frontend page with the value in the query
string; standard mode answers with a popup page that posts the value to its
opener window and closes.
"""

import json
from urllib.parse import urlencode

from coreason_sso.exceptions import CoreasonSSOError, SessionIssueError
from coreason_sso.interfaces import SessionSigner
from coreason_sso.models import LocalUser, SSOResponse

MANAGE_PAGE = "/@manage"
LOGIN_PAGE = "/@login"

POPUP_TEMPLATE = """<!DOCTYPE html>
<head></head>
<body>
<script>
window.opener.postMessage({message}, "*")
window.close()
</script>
</body>"""


def _script_json(value: str) -> str:
    # Keep the value from closing the <script> element
    return json.dumps(value).replace("<", "\\u003c").replace(">", "\\u003e").replace("&", "\\u0026")


def popup_document(key: str, value: str) -> str:
    separator = ": " if key == "sso_id" else ":"
    message = "{" + json.dumps(key) + separator + _script_json(value) + "}"
    return POPUP_TEMPLATE.format(message=message)


def render_sso_id(api_url: str, sso_id: str, compatibility: bool) -> SSOResponse:
    """Delivers the external identifier for account linking."""
    if compatibility:
        return SSOResponse.redirect(f"{api_url.rstrip('/')}{MANAGE_PAGE}?{urlencode({'sso_id': sso_id})}")
    return SSOResponse.html(popup_document("sso_id", sso_id))


def render_token(api_url: str, token: str, compatibility: bool) -> SSOResponse:
    """Delivers a freshly issued session token."""
    if compatibility:
        return SSOResponse.redirect(f"{api_url.rstrip('/')}{LOGIN_PAGE}?{urlencode({'token': token})}")
    return SSOResponse.html(popup_document("token", token))


def render_error(exc: CoreasonSSOError) -> SSOResponse:
    return SSOResponse.error(exc)


class SessionIssuer:
    """Mints local sessions through the host's signer."""

    def __init__(self, signer: SessionSigner) -> None:
        self.signer = signer

    async def issue(self, user: LocalUser) -> str:
        try:
            token = await self.signer.generate_token(user)
        except CoreasonSSOError:
            raise
        except Exception as e:
            raise SessionIssueError(f"Failed to generate session token: {e}") from e
        if not token:
            raise SessionIssueError("Session signer returned an empty token")
        return token
