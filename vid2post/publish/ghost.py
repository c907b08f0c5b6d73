"""Ghost Admin API client (image upload + draft creation).

Authentication follows Ghost's Admin API key scheme: the key is `<id>:<hex secret>`
and every request carries a short-lived HS256 JWT with `kid=<id>` and audience
`/admin/`.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Optional, Protocol

import jwt
import requests

from vid2post.http import get_session
from vid2post.publish.document import DraftPost

logger = logging.getLogger(__name__)

TOKEN_TTL_SECONDS = 5 * 60


class Publisher(Protocol):
    def upload_image(self, data: bytes, filename: str) -> str: ...

    def create_draft(self, post: DraftPost) -> dict[str, Any]: ...


def admin_token(admin_key: str, *, now: Optional[int] = None) -> str:
    key_id, secret = admin_key.split(":", 1)
    iat = int(now if now is not None else time.time())
    payload = {"iat": iat, "exp": iat + TOKEN_TTL_SECONDS, "aud": "/admin/"}
    return jwt.encode(payload, bytes.fromhex(secret), algorithm="HS256", headers={"kid": key_id})


def _error_message(response: requests.Response) -> str:
    try:
        errors = response.json().get("errors") or []
    except ValueError:
        errors = []
    if errors and isinstance(errors[0], dict):
        return str(errors[0].get("message") or errors[0])
    return response.text[:200] or response.reason


class GhostAdminClient:
    def __init__(
        self,
        url: str,
        admin_key: str,
        *,
        api_version: str = "v5.0",
        session: requests.Session | None = None,
        timeout: float = 60.0,
    ) -> None:
        self.url = url.rstrip("/")
        self.admin_key = admin_key
        self.api_version = api_version
        self.session = session or get_session()
        self.timeout = timeout

    def _endpoint(self, path: str) -> str:
        return f"{self.url}/ghost/api/admin/{path.strip('/')}/"

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Ghost {admin_token(self.admin_key)}",
            "Accept-Version": self.api_version,
        }

    def _check(self, response: requests.Response, action: str) -> dict[str, Any]:
        if not response.ok:
            raise RuntimeError(f"Ghost {action} failed ({response.status_code}): {_error_message(response)}")
        return response.json()

    def upload_image(self, data: bytes, filename: str) -> str:
        response = self.session.post(
            self._endpoint("images/upload"),
            headers=self._headers(),
            files={"file": (filename, data, "image/jpeg")},
            data={"purpose": "image", "ref": filename},
            timeout=self.timeout,
        )
        body = self._check(response, "image upload")
        url = body["images"][0]["url"]
        logger.info(f"Image uploaded successfully: {url}")
        return url

    def create_draft(self, post: DraftPost) -> dict[str, Any]:
        response = self.session.post(
            self._endpoint("posts"),
            headers=self._headers(),
            params={"source": "html"},
            json={"posts": [post.to_payload()]},
            timeout=self.timeout,
        )
        created = self._check(response, "post creation")["posts"][0]
        logger.info(f"Draft post created successfully: {created.get('id')}")
        return created
