"""Tests for draft assembly and the Ghost Admin API client."""

from __future__ import annotations

import time
import unittest
from unittest import mock

import jwt

from vid2post.publish.document import ArticleParts, DraftPost, assemble_body, build_draft
from vid2post.publish.ghost import GhostAdminClient, admin_token
from vid2post.tests.fakes import GHOST_KEY

PARTS = ArticleParts(
    source_url="https://video.example/watch?v=abc123",
    title="A Title",
    teaser="A teaser.",
    summary="The summary.",
    cta="Subscribe!",
)


def _response(ok=True, status=200, body=None, text=""):
    response = mock.Mock(ok=ok, status_code=status, text=text, reason="Unauthorized")
    response.json.return_value = body if body is not None else {}
    return response


class TestDocument(unittest.TestCase):
    def test_body_order(self) -> None:
        self.assertEqual(
            assemble_body(PARTS),
            "A Title\n\nhttps://video.example/watch?v=abc123\n\nA teaser.\n\nThe summary.\n\nSubscribe!",
        )

    def test_draft_is_html(self) -> None:
        draft = build_draft(PARTS, post_title="A Title", feature_image="https://img", codeinjection_head="<style></style>")

        self.assertEqual(draft.html.count("<p>"), 5)
        self.assertIn("<p>The summary.</p>", draft.html)
        self.assertEqual(
            draft.to_payload(),
            {
                "title": "A Title",
                "html": draft.html,
                "status": "draft",
                "feature_image": "https://img",
                "codeinjection_head": "<style></style>",
            },
        )

    def test_payload_omits_empty_optionals(self) -> None:
        payload = DraftPost(title="t", html="<p>x</p>").to_payload()
        self.assertEqual(set(payload), {"title", "html", "status"})


class TestAdminToken(unittest.TestCase):
    def test_token_claims(self) -> None:
        key_id, secret = GHOST_KEY.split(":")
        now = int(time.time())

        token = admin_token(GHOST_KEY, now=now)

        self.assertEqual(jwt.get_unverified_header(token)["kid"], key_id)
        claims = jwt.decode(token, bytes.fromhex(secret), algorithms=["HS256"], audience="/admin/")
        self.assertEqual(claims["iat"], now)
        self.assertEqual(claims["exp"], now + 300)


class TestGhostAdminClient(unittest.TestCase):
    def setUp(self) -> None:
        self.session = mock.Mock()
        self.client = GhostAdminClient("https://blog.example.com/", GHOST_KEY, session=self.session, timeout=7)

    def test_upload_image(self) -> None:
        self.session.post.return_value = _response(body={"images": [{"url": "https://blog.example.com/i.jpg"}]})

        url = self.client.upload_image(b"jpeg", "abc123_composed.jpg")

        self.assertEqual(url, "https://blog.example.com/i.jpg")
        args, kwargs = self.session.post.call_args
        self.assertEqual(args[0], "https://blog.example.com/ghost/api/admin/images/upload/")
        self.assertTrue(kwargs["headers"]["Authorization"].startswith("Ghost "))
        self.assertEqual(kwargs["headers"]["Accept-Version"], "v5.0")
        self.assertEqual(kwargs["files"]["file"], ("abc123_composed.jpg", b"jpeg", "image/jpeg"))
        self.assertEqual(kwargs["timeout"], 7)

    def test_create_draft(self) -> None:
        self.session.post.return_value = _response(body={"posts": [{"id": "p1", "status": "draft"}]})

        created = self.client.create_draft(DraftPost(title="t", html="<p>x</p>"))

        self.assertEqual(created["id"], "p1")
        args, kwargs = self.session.post.call_args
        self.assertEqual(args[0], "https://blog.example.com/ghost/api/admin/posts/")
        self.assertEqual(kwargs["params"], {"source": "html"})
        self.assertEqual(kwargs["json"], {"posts": [{"title": "t", "html": "<p>x</p>", "status": "draft"}]})

    def test_error_message_from_ghost(self) -> None:
        self.session.post.return_value = _response(
            ok=False, status=401, body={"errors": [{"message": "Invalid token"}]}
        )

        with self.assertRaises(RuntimeError) as cm:
            self.client.upload_image(b"jpeg", "x.jpg")

        self.assertIn("401", str(cm.exception))
        self.assertIn("Invalid token", str(cm.exception))

    def test_error_without_json_body(self) -> None:
        response = _response(ok=False, status=502, text="Bad Gateway")
        response.json.side_effect = ValueError("no json")
        self.session.post.return_value = response

        with self.assertRaises(RuntimeError) as cm:
            self.client.create_draft(DraftPost(title="t", html=""))

        self.assertIn("Bad Gateway", str(cm.exception))
