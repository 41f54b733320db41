from __future__ import annotations

import logging
import re
from typing import Any

import httpx

from ghostwriter.config import settings

logger = logging.getLogger(__name__)


class CompletionServiceError(RuntimeError):
    """The completion service could not produce text."""


class RateLimitError(CompletionServiceError):
    def __init__(self, *, provider: str, retry_after_seconds: float) -> None:
        super().__init__(f"Rate limited by {provider}; retry after {retry_after_seconds:.1f}s")
        self.provider = provider
        self.retry_after_seconds = retry_after_seconds


_RETRY_IN_RE = re.compile(r"retry in ([0-9]+\.?[0-9]*)s", re.IGNORECASE)


def _looks_rate_limited(exc: Exception) -> bool:
    msg = str(exc).lower()
    return "429" in msg or "quota" in msg or "rate" in msg


def _retry_after(exc: Exception, default: float) -> float:
    m = _RETRY_IN_RE.search(str(exc))
    if m:
        try:
            return float(m.group(1))
        except ValueError:
            pass
    return default


class CompletionService:
    """Text-completion collaborator: one ``complete()`` over several providers.

    Providers are tried in failover order (primary first). A rate limit is
    raised immediately so the caller can back off; any other provider error
    moves on to the next provider.
    """

    def __init__(self, provider: str | None = None, *, temperature: float | None = None) -> None:
        self.provider = (provider or settings.LLM_PROVIDER).lower()
        self.temperature = settings.LLM_TEMPERATURE if temperature is None else temperature

    def _get_failover_chain(self) -> list[str]:
        """Return the ordered list of providers to try.

        Primary provider first, then any configured failover providers,
        filtered to those that actually have credentials available.
        """
        chain = [self.provider]

        explicit = settings.LLM_FAILOVER_CHAIN
        if explicit:
            chain.extend(p for p in explicit if p not in chain)
        else:
            candidates = []
            if settings.OPENAI_API_KEY:
                candidates.append("openai")
            if settings.ANTHROPIC_API_KEY:
                candidates.append("anthropic")
            if settings.GEMINI_API_KEY:
                candidates.append("gemini")
            # A local Ollama server needs no key; always the last resort
            candidates.append("ollama")
            chain.extend(p for p in candidates if p not in chain)

        return chain

    def complete(self, system_instruction: str, messages: list[dict[str, str]], max_tokens: int) -> str:
        chain = self._get_failover_chain()
        last_error: Exception | None = None

        for provider in chain:
            try:
                text = (self._dispatch(provider, system_instruction, messages, max_tokens) or "").strip()
                if text:
                    if provider != self.provider:
                        logger.warning(f"[FAILOVER] Succeeded on fallback provider: {provider}")
                    return text
                logger.warning(f"[FAILOVER] Provider {provider} returned an empty completion")
            except RateLimitError:
                raise
            except Exception as exc:
                last_error = exc
                logger.warning(f"[FAILOVER] Provider {provider} failed: {exc}")
                continue

        if last_error:
            raise CompletionServiceError(f"All providers failed ({', '.join(chain)}): {last_error}") from last_error
        raise CompletionServiceError("All providers returned empty completions")

    def _dispatch(self, provider: str, system_prompt: str, messages: list[dict[str, str]], max_tokens: int) -> str:
        """Route to the correct provider method."""
        if provider == "openai":
            return self._openai_reply(system_prompt, messages, max_tokens)
        elif provider == "anthropic":
            return self._anthropic_reply(system_prompt, messages, max_tokens)
        elif provider == "gemini":
            return self._gemini_reply(system_prompt, messages, max_tokens)
        elif provider == "ollama":
            return self._ollama_reply(system_prompt, messages, max_tokens)
        else:
            raise ValueError(f"Unsupported LLM provider: {provider}")

    @staticmethod
    def _chat_messages(messages: list[dict[str, Any]]) -> list[dict[str, str]]:
        out: list[dict[str, str]] = []
        for item in messages:
            role = item.get("role")
            if role not in {"user", "assistant"}:
                continue
            out.append({"role": role, "content": str(item.get("content", ""))})
        return out

    def _openai_reply(self, system_prompt: str, messages: list[dict[str, Any]], max_tokens: int) -> str:
        if not settings.OPENAI_API_KEY:
            raise RuntimeError("OPENAI_API_KEY is not set")

        import openai

        client = openai.OpenAI(api_key=settings.OPENAI_API_KEY, timeout=settings.LLM_TIMEOUT)
        try:
            resp = client.chat.completions.create(
                model=settings.OPENAI_MODEL,
                messages=[{"role": "system", "content": system_prompt}, *self._chat_messages(messages)],
                max_tokens=max_tokens,
                temperature=self.temperature,
            )
        except openai.RateLimitError as exc:
            raise RateLimitError(provider="openai", retry_after_seconds=_retry_after(exc, 20.0)) from exc
        return (resp.choices[0].message.content or "").strip()

    def _anthropic_reply(self, system_prompt: str, messages: list[dict[str, Any]], max_tokens: int) -> str:
        if not settings.ANTHROPIC_API_KEY:
            raise RuntimeError("ANTHROPIC_API_KEY is not set")

        import anthropic

        client = anthropic.Anthropic(api_key=settings.ANTHROPIC_API_KEY, timeout=settings.LLM_TIMEOUT)
        try:
            resp = client.messages.create(
                model=settings.ANTHROPIC_MODEL,
                system=system_prompt,
                messages=self._chat_messages(messages),
                max_tokens=max_tokens,
                temperature=self.temperature,
            )
        except anthropic.RateLimitError as exc:
            # Default retry 60s for Anthropic if headers not visible easily
            raise RateLimitError(provider="anthropic", retry_after_seconds=60.0) from exc
        return (resp.content[0].text or "").strip()

    def _gemini_reply(self, system_prompt: str, messages: list[dict[str, Any]], max_tokens: int) -> str:
        if not settings.GEMINI_API_KEY:
            raise RuntimeError("GEMINI_API_KEY is not set")

        import google.generativeai as genai

        genai.configure(api_key=settings.GEMINI_API_KEY)

        # Gemini's SDK takes a single prompt string; merge system + messages.
        parts: list[str] = ["SYSTEM:\n" + system_prompt.strip(), "\nCHAT:\n"]
        for item in self._chat_messages(messages):
            text = item["content"].strip()
            if not text:
                continue
            speaker = "Assistant" if item["role"] == "assistant" else "User"
            parts.append(f"{speaker}: {text}\n")
        prompt = "".join(parts).strip()

        model = genai.GenerativeModel(settings.GEMINI_MODEL)
        try:
            resp = model.generate_content(
                prompt,
                generation_config={"temperature": self.temperature, "max_output_tokens": max_tokens},
            )
        except Exception as exc:
            if _looks_rate_limited(exc):
                raise RateLimitError(provider="gemini", retry_after_seconds=_retry_after(exc, 30.0)) from exc
            raise

        text = getattr(resp, "text", None)
        if not text:
            try:
                text = resp.candidates[0].content.parts[0].text
            except (AttributeError, IndexError):
                text = ""
        return str(text).strip()

    def _ollama_reply(self, system_prompt: str, messages: list[dict[str, Any]], max_tokens: int) -> str:
        payload = {
            "model": settings.OLLAMA_MODEL,
            "messages": [{"role": "system", "content": system_prompt}, *self._chat_messages(messages)],
            "stream": False,
            "options": {"num_predict": max_tokens, "temperature": self.temperature},
        }
        url = settings.OLLAMA_HOST.rstrip("/") + "/api/chat"
        with httpx.Client(timeout=settings.LLM_TIMEOUT) as client:
            resp = client.post(url, json=payload)
            if resp.status_code == 429:
                raise RateLimitError(provider="ollama", retry_after_seconds=float(resp.headers.get("retry-after", 10)))
            resp.raise_for_status()
            data = resp.json()
        return str((data.get("message") or {}).get("content", "")).strip()
