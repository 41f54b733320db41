"""CLI commands, production wiring and the vision collaborator."""

from __future__ import annotations

import base64
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from ghostwriter import cli
from ghostwriter.orchestrator import build_chain
from ghostwriter.services import vision as vision_mod
from ghostwriter.services.chain import ChainOutcome, ChainResult
from ghostwriter.services.style_store import StyleStore
from ghostwriter.services.vision import ImageDescriber, encode_image, split_descriptions
from ghostwriter.utils.message_store import MessageStore


class TestCli:
    def test_reply_prints_outcome(self, capsys) -> None:
        chain = MagicMock()
        chain.run.return_value = ChainResult(outcome=ChainOutcome.SENT, reply="ya sure", log=MagicMock())
        with patch("ghostwriter.cli._configure_logging"), patch("ghostwriter.cli.build_chain", return_value=chain):
            code = cli.main(["reply", "c1", "Sita", "saturday?", "--image-desc", "a cat"])
        assert code == 0
        chain.run.assert_called_once_with("c1", "Sita", "saturday?", ["a cat"])
        assert capsys.readouterr().out.strip() == "SENT: ya sure"

    def test_reply_skipped(self, capsys) -> None:
        chain = MagicMock()
        chain.run.return_value = ChainResult(outcome=ChainOutcome.SKIPPED, reply=None, log=MagicMock())
        with patch("ghostwriter.cli._configure_logging"), patch("ghostwriter.cli.build_chain", return_value=chain):
            assert cli.main(["reply", "c1", "Sita", "hmm"]) == 0
        assert capsys.readouterr().out.strip() == "SKIPPED: (none)"

    def test_reply_failure_exit_code(self) -> None:
        chain = MagicMock()
        chain.run.side_effect = RuntimeError("All providers failed")
        with patch("ghostwriter.cli._configure_logging"), patch("ghostwriter.cli.build_chain", return_value=chain):
            assert cli.main(["reply", "c1", "Sita", "hey"]) == 1

    def test_record(self, tmp_path, monkeypatch, capsys) -> None:
        monkeypatch.setattr(cli.settings, "HISTORY_DIR", tmp_path)
        with patch("ghostwriter.cli._configure_logging"):
            assert cli.main(["record", "c1", "typed it myself", "--from-me"]) == 0
            assert cli.main(["record", "c1", "   "]) == 1
        out = capsys.readouterr().out
        assert "Stored." in out
        assert "Not stored" in out
        (msg,) = MessageStore(tmp_path).recent("c1", 5)
        assert msg.is_from_me

    def test_command_required(self) -> None:
        with pytest.raises(SystemExit):
            cli.main([])


class TestBuildChain:
    def test_wired_chain_runs(self, tmp_path, make_completion) -> None:
        completion = make_completion()
        history = MessageStore(tmp_path / "history")
        history.store_message(counterpart_id="c1", text="saturday?", is_from_me=False, timestamp=1.7e9)
        styles = StyleStore(tmp_path / "styles")
        styles.save_document("c1", "## General Style\nlowercase, short")

        chain = build_chain(
            completion=completion,
            vision=MagicMock(),
            history=history,
            styles=styles,
            sink_factory=lambda: [],
        )
        result = chain.run("c1", "Sita", "saturday?")

        assert result.outcome is ChainOutcome.SENT
        assert result.reply == "yeah sounds good"
        assert "lowercase, short" in completion.stage_calls("write")[0].system


class TestVision:
    def test_encode_data_url_passthrough(self) -> None:
        url = "data:image/png;base64,AAAA"
        assert encode_image(url) == url

    def test_encode_bytes(self) -> None:
        assert encode_image(b"\x89PNG") == "data:image/png;base64," + base64.b64encode(b"\x89PNG").decode()

    def test_encode_path(self, tmp_path) -> None:
        img = tmp_path / "cat.jpg"
        img.write_bytes(b"jpegdata")
        assert encode_image(img).startswith("data:image/jpeg;base64,")
        assert encode_image(str(img)) == encode_image(img)

    def test_encode_missing_path(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            encode_image(tmp_path / "gone.png")

    def test_encode_bare_base64(self) -> None:
        assert encode_image("QUJD") == "data:image/jpeg;base64,QUJD"

    def test_split_descriptions(self) -> None:
        assert split_descriptions("a cat\nsitting", 1) == ["a cat\nsitting"]
        assert split_descriptions("1. a cat\n2. a dog\n3) a bird", 3) == ["1. a cat", "2. a dog", "3) a bird"]
        assert split_descriptions("anything", 0) == []

    def test_split_pads_missing_descriptions(self) -> None:
        unavailable = "[Image description unavailable]"
        assert split_descriptions("one blob about both", 2) == ["one blob about both", unavailable]
        assert split_descriptions("", 2) == [unavailable, unavailable]
        assert split_descriptions("  ", 1) == [unavailable]

    def test_split_folds_surplus_descriptions(self) -> None:
        out = split_descriptions("1. a cat\n2. a dog\n3. a bird", 2)
        assert out == ["1. a cat", "2. a dog\n3. a bird"]

    def test_describe_requires_key(self, monkeypatch) -> None:
        monkeypatch.setattr(vision_mod.settings, "OPENAI_API_KEY", None)
        with pytest.raises(RuntimeError, match="OPENAI_API_KEY"):
            ImageDescriber().describe([b"img"])

    def test_describe_no_images(self) -> None:
        assert ImageDescriber().describe([]) == []

    def test_describe_request(self, monkeypatch) -> None:
        monkeypatch.setattr(vision_mod.settings, "OPENAI_API_KEY", "sk-test")
        reply = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="1. a cat\n2. a beach"))])
        with patch("openai.OpenAI") as MockOpenAI:
            create = MockOpenAI.return_value.chat.completions.create
            create.return_value = reply
            out = ImageDescriber(model="gpt-4o-mini").describe([b"one", "data:image/png;base64,two"])

        assert out == ["1. a cat", "2. a beach"]
        kwargs = create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        content = kwargs["messages"][1]["content"]
        assert content[0]["type"] == "text"
        assert [c["image_url"]["url"] for c in content[1:]] == [
            "data:image/png;base64," + base64.b64encode(b"one").decode(),
            "data:image/png;base64,two",
        ]
