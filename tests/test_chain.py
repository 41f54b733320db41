"""Outcome resolver: the verify/revise state machine and its terminal outcomes."""

from __future__ import annotations

import logging
from dataclasses import replace

import pytest

from ghostwriter.config.prompts import DEFAULT_PROMPTS
from ghostwriter.services.chain import ChainOutcome, ChainState, usable_suggestion
from ghostwriter.services.chain_log import FileChainSink
from ghostwriter.services.completion import CompletionServiceError
from ghostwriter.services.verifier import VerificationVerdict, Verifier

FAIL_NO_SUGGESTION = "FAIL\nREASON: sounds like a bot\nSUGGESTION: none"
CID = "977123@c.us"


def _run(chain, text="are we still on for saturday?", images=()):
    return chain.run(CID, "Sita", text, images)


class TestHappyPath:
    def test_pass_on_first_attempt(self, make_completion, make_chain) -> None:
        completion = make_completion()
        result = _run(make_chain(completion))

        assert result.outcome is ChainOutcome.SENT
        assert result.reply == "yeah sounds good"
        assert len(result.attempts) == 1
        assert result.attempts[0].attempt_index == 0
        assert result.attempts[0].candidate_text == "yeah sounds good"
        assert completion.stages == ["think", "decide", "write", "verify"]
        assert result.states == [ChainState.DRAFTED, ChainState.VERIFYING, ChainState.PASSED]

    def test_pass_after_rewrite(self, make_completion, make_chain) -> None:
        completion = make_completion(verify=[FAIL_NO_SUGGESTION, "PASS\nREASON: good\nSUGGESTION: none"])
        result = _run(make_chain(completion))

        assert result.outcome is ChainOutcome.SENT
        assert result.reply == "ok cool then"
        assert len(result.attempts) == 2
        assert completion.stages == ["think", "decide", "write", "verify", "rewrite", "verify"]
        assert ChainState.REVISING in result.states

    def test_low_confidence_is_not_a_stop(self, make_completion, make_chain) -> None:
        completion = make_completion(think="CONFIDENCE: LOW - no idea what she means")
        result = _run(make_chain(completion))

        assert result.outcome is ChainOutcome.SENT
        think_steps = [s for s in result.log.steps if s.name == "Think"]
        assert think_steps[-1].status == "fail"
        assert "LOW confidence" in completion.stage_calls("decide")[0].user


class TestExhaustion:
    def test_skipped_without_suggestion(self, make_completion, make_chain, caplog) -> None:
        completion = make_completion(verify=FAIL_NO_SUGGESTION)
        with caplog.at_level(logging.INFO, logger="ghostwriter.audit"):
            result = _run(make_chain(completion))

        assert result.outcome is ChainOutcome.SKIPPED
        assert result.reply is None
        assert not result.should_send
        assert len(result.attempts) == 3
        assert len(completion.stage_calls("verify")) == 3
        assert len(completion.stage_calls("rewrite")) == 2
        assert result.states[-1] is ChainState.FALLBACK_CHECK
        assert any(r.name == "ghostwriter.audit" and "SKIPPED" in r.getMessage() for r in caplog.records)

    def test_suggestion_adopted_verbatim(self, make_completion, make_chain) -> None:
        completion = make_completion(verify='FAIL\nREASON: too formal\nSUGGESTION: "nah im good"')
        result = _run(make_chain(completion))

        assert result.outcome is ChainOutcome.SENT_SUGGESTION
        assert result.reply == "nah im good"
        assert len(result.attempts) == 3

    def test_only_last_verdict_counts(self, make_completion, make_chain) -> None:
        completion = make_completion(
            verify=[
                "FAIL\nREASON: a\nSUGGESTION: first idea",
                "FAIL\nREASON: b\nSUGGESTION: second idea",
                FAIL_NO_SUGGESTION,
            ]
        )
        result = _run(make_chain(completion))
        assert result.outcome is ChainOutcome.SKIPPED

    def test_long_suggestion_rejected(self, make_completion, make_chain) -> None:
        long = "word " * 25
        completion = make_completion(verify=f"FAIL\nREASON: x\nSUGGESTION: {long}")
        result = _run(make_chain(completion))
        assert result.outcome is ChainOutcome.SKIPPED

    def test_local_check_suggestion_not_adopted(self, make_completion, make_chain, history_of) -> None:
        history = history_of("saturday?", "yeah sounds good")
        completion = make_completion(write="yeah sounds good", rewrite="Yeah  sounds GOOD")
        result = _run(make_chain(completion, history=history))

        assert result.outcome is ChainOutcome.SKIPPED
        assert result.reply is None
        assert "verify" not in completion.stages
        assert all(a.verdict.check == "duplicate" for a in result.attempts)

    def test_repeated_suggestion_not_adopted(self, make_completion, make_chain, history_of) -> None:
        history = history_of("you coming?", "nah im good")
        completion = make_completion(verify='FAIL\nREASON: too formal\nSUGGESTION: "Nah  im good"')
        result = _run(make_chain(completion, history=history))

        assert result.outcome is ChainOutcome.SKIPPED
        assert result.reply is None
        assert len(completion.stage_calls("verify")) == 3

    def test_zero_retry_budget(self, make_completion, make_chain) -> None:
        completion = make_completion(verify=FAIL_NO_SUGGESTION)
        result = _run(make_chain(completion, max_retries=0))
        assert len(result.attempts) == 1
        assert "rewrite" not in completion.stages


class TestFailures:
    def test_verifier_error_fails_open(self, make_completion, make_chain, caplog) -> None:
        completion = make_completion(verify=TimeoutError("judge timed out"))
        with caplog.at_level(logging.INFO, logger="ghostwriter.audit"):
            result = _run(make_chain(completion))

        assert result.outcome is ChainOutcome.SENT_UNVERIFIED
        assert result.reply == "yeah sounds good"
        assert result.attempts[0].verdict is None
        assert "judge timed out" in result.attempts[0].error
        assert any("SENT_UNVERIFIED" in r.getMessage() for r in caplog.records if r.name == "ghostwriter.audit")

    def test_fail_open_sends_latest_candidate(self, make_completion, make_chain) -> None:
        completion = make_completion(verify=[FAIL_NO_SUGGESTION, RuntimeError("network down")])
        result = _run(make_chain(completion))
        assert result.outcome is ChainOutcome.SENT_UNVERIFIED
        assert result.reply == "ok cool then"

    def test_broken_verify_prompt_aborts(self, make_completion, make_chain, tmp_path) -> None:
        completion = make_completion()
        chain = make_chain(completion, sinks=[FileChainSink(tmp_path)])
        chain.verifier = Verifier(completion, replace(DEFAULT_PROMPTS, verify_task="{no_such_field}"))
        with pytest.raises(KeyError):
            _run(chain)
        assert "verify" not in completion.stages
        (log_file,) = tmp_path.glob("*.log")
        assert "FINAL: ABORTED" in log_file.read_text(encoding="utf-8")

    @pytest.mark.parametrize("stage", ["think", "decide", "write"])
    def test_early_stage_failure_propagates(self, make_completion, make_chain, stage) -> None:
        completion = make_completion(**{stage: CompletionServiceError("provider down")})
        chain = make_chain(completion)
        with pytest.raises(CompletionServiceError):
            _run(chain)
        assert "verify" not in completion.stages

    def test_reviser_failure_propagates(self, make_completion, make_chain) -> None:
        completion = make_completion(verify=FAIL_NO_SUGGESTION, rewrite=CompletionServiceError("down"))
        with pytest.raises(CompletionServiceError):
            _run(make_chain(completion))

    def test_abort_is_logged(self, make_completion, make_chain, tmp_path) -> None:
        completion = make_completion(write=CompletionServiceError("down"))
        with pytest.raises(CompletionServiceError):
            _run(make_chain(completion, sinks=[FileChainSink(tmp_path)]))
        (log_file,) = tmp_path.glob("*.log")
        text = log_file.read_text(encoding="utf-8")
        assert "FINAL: ABORTED" in text
        assert "Reply: (none)" in text


class TestScenarios:
    def test_emergency_gets_caring_reply(self, make_completion, make_chain, history_of) -> None:
        caring = "oh no are you okay?? what happened, which hospital are you at"

        def judge(system: str, user: str) -> str:
            if "EMERGENCY SITUATION" in system and 'AS Avin: "ok"' in user:
                return f"FAIL\nREASON: dismissive during an emergency\nSUGGESTION: {caring}"
            return "PASS\nREASON: shows concern\nSUGGESTION: none"

        completion = make_completion(write="ok", rewrite=caring, verify=judge)
        history = history_of("hey", "going home", "ok", "see you there", "bye", "where are you")
        result = _run(make_chain(completion, history=history), "bro I had an accident, I'm at the hospital")

        assert result.outcome is ChainOutcome.SENT
        assert result.reply == caring
        assert result.attempts[0].verdict.passed is False
        assert "EMERGENCY: Sita is in distress" in completion.stage_calls("think")[0].user
        assert "EMERGENCY DETECTED" in completion.stage_calls("decide")[0].system
        assert "up to 15 words" in completion.stage_calls("decide")[0].system
        assert "EMERGENCY" in completion.stage_calls("write")[0].system

    def test_real_world_question_forces_dodge(self, make_completion, make_chain) -> None:
        completion = make_completion(
            think="3. NEEDS REAL-WORLD KNOWLEDGE - AI should dodge.\n6. CONFIDENCE: MEDIUM",
            write="why u asking",
        )
        result = _run(make_chain(completion), "did you submit the form?")
        assert "MANDATORY" in completion.stage_calls("decide")[0].user
        assert result.reply == "why u asking"
        assert any(s.name == "Decide" and "dodge forced" in s.note for s in result.log.steps)

    def test_image_descriptions_reach_stages(self, make_completion, make_chain) -> None:
        completion = make_completion()
        _run(make_chain(completion), "[image]", ["a cat wearing sunglasses"])
        assert "a cat wearing sunglasses" in completion.stage_calls("think")[0].user
        assert "a cat wearing sunglasses" in completion.stage_calls("write")[0].system

    def test_file_log_written(self, make_completion, make_chain, tmp_path) -> None:
        completion = make_completion()
        result = _run(make_chain(completion, sinks=[FileChainSink(tmp_path)]))
        (log_file,) = tmp_path.glob("977123_c_us_*.log")
        text = log_file.read_text(encoding="utf-8")
        assert text.startswith(f"Chain Log: Sita ({CID})")
        for name in ("Think", "Decide", "Write", "Verify"):
            assert f"--- {name} [+" in text
        assert "FINAL: SENT" in text
        assert f"Reply: {result.reply}" in text


class TestUsableSuggestion:
    def _v(self, suggestion, check="judge"):
        return VerificationVerdict(passed=False, reason="x", suggestion=suggestion, check=check)

    def test_rules(self) -> None:
        assert usable_suggestion(None) is None
        assert usable_suggestion(self._v(None)) is None
        assert usable_suggestion(self._v("  ")) is None
        assert usable_suggestion(self._v("None")) is None
        assert usable_suggestion(self._v("x" * 100)) is None
        assert usable_suggestion(self._v("x" * 99)) == "x" * 99
        assert usable_suggestion(self._v("'ya ok'")) == "ya ok"
        assert usable_suggestion(self._v("ya ok", check="length")) is None
