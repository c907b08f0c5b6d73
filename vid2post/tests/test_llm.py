"""Tests for the text generation backends."""

from __future__ import annotations

import os
import unittest
from unittest import mock

import requests

from vid2post.llm.factory import LangChainGenerator, _message_text, create_chat_model
from vid2post.llm.ollama import OllamaGenerator


class TestOllamaGenerator(unittest.TestCase):
    def setUp(self) -> None:
        self.session = mock.Mock()
        self.generator = OllamaGenerator("http://ollama:11434/api/generate", session=self.session, timeout=9)

    def _respond(self, body=None, json_error=None, status_error=None):
        response = mock.Mock(text="<html>")
        response.json.return_value = body
        if json_error is not None:
            response.json.side_effect = json_error
        if status_error is not None:
            response.raise_for_status.side_effect = status_error
        self.session.post.return_value = response

    def test_non_streaming_request(self) -> None:
        self._respond({"response": "A summary."})

        self.assertEqual(self.generator.generate("Summarize: hi", "llama3"), "A summary.")
        self.session.post.assert_called_once_with(
            "http://ollama:11434/api/generate",
            json={"model": "llama3", "stream": False, "prompt": "Summarize: hi"},
            timeout=9,
        )

    def test_http_error_propagates(self) -> None:
        self._respond(status_error=requests.HTTPError("500 Server Error"))

        with self.assertRaises(requests.HTTPError):
            self.generator.generate("p", "llama3")

    def test_non_json_body(self) -> None:
        self._respond(json_error=ValueError("Expecting value"))

        with self.assertRaises(RuntimeError):
            self.generator.generate("p", "llama3")

    def test_empty_response(self) -> None:
        self._respond({"response": ""})

        with self.assertRaises(RuntimeError):
            self.generator.generate("p", "llama3")


class TestCreateChatModel(unittest.TestCase):
    @mock.patch.dict(os.environ, {"OPENAI_API_KEY": ""})
    def test_missing_key(self) -> None:
        with self.assertRaises(ValueError) as cm:
            create_chat_model(model_name="gpt-5.1")
        self.assertIn("OPENAI_API_KEY", str(cm.exception))

    def test_unknown_provider(self) -> None:
        with self.assertRaises(ValueError):
            create_chat_model(model_name="llama3")

    @mock.patch.dict(os.environ, {"ANTHROPIC_API_KEY": "sk-ant-test"})
    def test_provider_inferred_from_name(self) -> None:
        with mock.patch("vid2post.llm.factory.ChatAnthropic") as chat:
            create_chat_model(model_name="claude-custom", temperature=0.1, timeout=30)

        chat.assert_called_once_with(model_name="claude-custom", api_key="sk-ant-test", temperature=0.1, timeout=30)

    @mock.patch.dict(os.environ, {"MY_KEY": "secret"})
    def test_registry_entry_wins(self) -> None:
        registry = {"house-model": {"provider": "openai", "env_var": "MY_KEY"}}
        with mock.patch("vid2post.llm.factory.ChatOpenAI") as chat:
            create_chat_model(model_name="house-model", registry=registry)

        chat.assert_called_once_with(model="house-model", api_key="secret")


class TestLangChainGenerator(unittest.TestCase):
    def test_generate_strips_and_caches_model(self) -> None:
        model = mock.Mock()
        model.invoke.return_value = mock.Mock(content="  A title \n")
        with mock.patch("vid2post.llm.factory.create_chat_model", return_value=model) as factory:
            generator = LangChainGenerator(timeout=5)
            self.assertEqual(generator.generate("TITLE x", "gpt-5.1"), "A title")
            generator.generate("TEASER x", "gpt-5.1")

        factory.assert_called_once_with(model_name="gpt-5.1", registry=None, temperature=0.2, timeout=5)
        [message] = model.invoke.call_args_list[0].args[0]
        self.assertEqual(message.content, "TITLE x")

    def test_empty_reply(self) -> None:
        model = mock.Mock()
        model.invoke.return_value = mock.Mock(content="   ")
        with mock.patch("vid2post.llm.factory.create_chat_model", return_value=model):
            with self.assertRaises(RuntimeError):
                LangChainGenerator().generate("p", "gpt-5.1")

    def test_content_blocks(self) -> None:
        reply = mock.Mock(content=[{"type": "text", "text": "Hello "}, {"type": "text", "text": "there"}])
        self.assertEqual(_message_text(reply), "Hello there")
