"""Tests for CLI entrypoint wiring."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from copy import deepcopy
import io
import json
import unittest
from unittest.mock import AsyncMock, patch

import httpx

from ollama_stream.__main__ import _run_chat, _run_models, main
from ollama_stream.config import DEFAULT_CONFIG
from ollama_stream.exceptions import OllamaConnectionError
from ollama_stream.session import ChatSession
from ollama_stream.transport import StreamObserver


async def _body(chunks: list[bytes]) -> AsyncGenerator[bytes, None]:
    for chunk in chunks:
        yield chunk


def _server(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/api/tags":
        return httpx.Response(
            200, json={"models": [{"name": "llama3.2", "size": 2_000_000_000}]}
        )
    lines = [
        {"message": {"role": "assistant", "content": "po"}, "done": False},
        {"message": {"role": "assistant", "content": "ng"}, "done": False},
        {"done": True},
    ]
    return httpx.Response(
        200, content=_body([(json.dumps(line) + "\n").encode() for line in lines])
    )


class MainEntrypointTests(unittest.TestCase):
    """Validate top-level main() behavior."""

    def _patched_main(self, argv: list[str], dispatch: AsyncMock) -> int:
        with patch("ollama_stream.__main__.ensure_config_dir") as ensure_mock, patch(
            "ollama_stream.__main__.load_config", return_value=deepcopy(DEFAULT_CONFIG)
        ), patch("ollama_stream.__main__.configure_logging") as logging_mock, patch(
            "ollama_stream.__main__._dispatch", dispatch
        ):
            code = main(argv)
            ensure_mock.assert_called_once()
            logging_mock.assert_called_once()
        return code

    def test_main_runs_command_with_overrides(self) -> None:
        dispatch = AsyncMock(return_value=0)
        code = self._patched_main(
            ["--endpoint", "http://127.0.0.1:9999/api", "--model", "mistral", "models"],
            dispatch,
        )
        self.assertEqual(code, 0)
        args, config = dispatch.await_args.args
        self.assertEqual(args.command, "models")
        self.assertEqual(config["ollama"]["endpoint"], "http://127.0.0.1:9999/api")
        self.assertEqual(config["ollama"]["model"], "mistral")

    def test_domain_errors_exit_nonzero(self) -> None:
        dispatch = AsyncMock(side_effect=OllamaConnectionError("unreachable"))
        with patch("sys.stderr", new_callable=io.StringIO) as stderr:
            code = self._patched_main(["models"], dispatch)
        self.assertEqual(code, 1)
        self.assertIn("unreachable", stderr.getvalue())

    def test_version(self) -> None:
        with patch("sys.stdout", new_callable=io.StringIO) as stdout:
            self.assertEqual(main(["--version"]), 0)
        self.assertTrue(stdout.getvalue().startswith("ollama-stream "))

    def test_no_command_prints_help(self) -> None:
        with patch("sys.stdout", new_callable=io.StringIO) as stdout:
            self.assertEqual(main([]), 2)
        self.assertIn("usage", stdout.getvalue())


class CommandTests(unittest.IsolatedAsyncioTestCase):
    """Run the command bodies against a mocked endpoint."""

    def _session(self) -> ChatSession:
        client = httpx.AsyncClient(transport=httpx.MockTransport(_server))
        self.addAsyncCleanup(client.aclose)
        session = ChatSession(client=client, observer=StreamObserver())
        self.addAsyncCleanup(session.aclose)
        return session

    async def test_chat_streams_reply_to_stdout(self) -> None:
        session = self._session()
        with patch("sys.stdout", new_callable=io.StringIO) as stdout:
            code = await _run_chat(session, "ping")
        self.assertEqual(code, 0)
        self.assertEqual(stdout.getvalue(), "pong\n")

    async def test_models_lists_sizes(self) -> None:
        session = self._session()
        with patch("sys.stdout", new_callable=io.StringIO) as stdout:
            code = await _run_models(session)
        self.assertEqual(code, 0)
        self.assertEqual(stdout.getvalue(), "llama3.2  2.0 GB\n")


if __name__ == "__main__":
    unittest.main()
