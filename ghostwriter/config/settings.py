from __future__ import annotations

import os
from pathlib import Path


def _parse_csv(raw: str) -> list[str]:
    parts = [p.strip() for p in raw.split(",")]
    return [p for p in parts if p]


# Persistent local state (history, style profiles, chain logs, process logs)
DATA_DIR: Path = Path(
    os.getenv("GHOSTWRITER_DATA_DIR") or (Path(__file__).resolve().parents[2] / "data")
)

# One JSON file of messages per counterpart
HISTORY_DIR: Path = DATA_DIR / "history"

# Style documents (<id>.md) and their meta files (<id>.meta.json)
STYLE_PROFILE_DIR: Path = DATA_DIR / "style-profiles"

# One human-readable audit file per pipeline invocation
CHAIN_LOG_DIR: Path = DATA_DIR / "chain-logs"

# Logging
LOG_DIR: Path = DATA_DIR / "logs"
LOG_FILE: Path = LOG_DIR / "ghostwriter.log"
LOG_LEVEL: str = os.getenv("GHOSTWRITER_LOG_LEVEL", "INFO").upper()
CHAIN_LOG_COLOR: bool = os.getenv("GHOSTWRITER_CHAIN_COLOR", "true").lower() == "true"

# The person being impersonated.
USER_NAME: str = os.getenv("GHOSTWRITER_USER_NAME", "Me")

# Timezone used to render "(HH:MM)" labels on history lines
TIMEZONE: str = os.getenv("GHOSTWRITER_TIMEZONE", "UTC")

# OpenAI
OPENAI_API_KEY: str | None = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL: str = os.getenv("OPENAI_MODEL", "gpt-4o")

# Anthropic
ANTHROPIC_API_KEY: str | None = os.getenv("ANTHROPIC_API_KEY")
ANTHROPIC_MODEL: str = os.getenv("ANTHROPIC_MODEL", "claude-3-5-sonnet-latest")

# Gemini (Google)
# IMPORTANT: Do not hardcode API keys in this repo. Set env var instead.
GEMINI_API_KEY: str | None = os.getenv("GEMINI_API_KEY")
GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash-lite")

# Ollama (local, no key)
OLLAMA_HOST: str = os.getenv("OLLAMA_HOST", "http://localhost:11434")
OLLAMA_MODEL: str = os.getenv("OLLAMA_MODEL", "llama3")

# Vision descriptions go through OpenAI's multimodal chat endpoint
VISION_MODEL: str = os.getenv("VISION_MODEL", OPENAI_MODEL)

LLM_TEMPERATURE: float = float(os.getenv("LLM_TEMPERATURE", "0.5"))
LLM_TIMEOUT: float = float(os.getenv("LLM_TIMEOUT", "120"))

# Smart Default logic
# Priority:
# 1) Explicit env var always wins
# 2) Otherwise choose a provider that has credentials configured
# 3) Otherwise default to a local Ollama server so the system can run without API keys
_env_provider = (os.getenv("LLM_PROVIDER") or "").strip().lower()

if _env_provider:
    _default_provider = _env_provider
elif OPENAI_API_KEY:
    _default_provider = "openai"
elif ANTHROPIC_API_KEY:
    _default_provider = "anthropic"
elif GEMINI_API_KEY:
    _default_provider = "gemini"
else:
    _default_provider = "ollama"

LLM_PROVIDER: str = _default_provider

# Provider failover order (csv).  First working provider wins.
# Empty = auto-build from the providers that have credentials.
_env_failover = (os.getenv("LLM_FAILOVER_CHAIN") or "").strip()
LLM_FAILOVER_CHAIN: list[str] = [p.lower() for p in _parse_csv(_env_failover)] if _env_failover else []

# ---- Reply chain policy ----
HISTORY_LIMIT: int = int(os.getenv("HISTORY_LIMIT", "60"))
RECENT_REPLY_LIMIT: int = int(os.getenv("RECENT_REPLY_LIMIT", "10"))
# Machine-generated replies considered by the exact-duplicate check
RECENT_BOT_REPLY_LIMIT: int = 5
MAX_RETRIES: int = 2
EMERGENCY_UPPER: int = 15
MAX_SUGGESTION_CHARS: int = 100
MAX_EXEMPLARS: int = 15

# Outgoing message ids with these prefixes were written by the bot, not the user
MACHINE_ID_PREFIXES: tuple[str, ...] = ("auto_", "web_")

# Token budgets per stage
THINK_MAX_TOKENS: int = 400
DECIDE_MAX_TOKENS: int = 350
WRITE_MAX_TOKENS: int = 100
VERIFY_MAX_TOKENS: int = 250
REWRITE_MAX_TOKENS: int = 100
VISION_MAX_TOKENS: int = 500

# Style document excerpt sizes handed to the analysis stages
THINK_STYLE_CHARS: int = 2000
DECIDE_STYLE_CHARS: int = 2500

# ---- Orchestration ----
DEBOUNCE_SECONDS: float = float(os.getenv("DEBOUNCE_SECONDS", "4.0"))
AUTO_REPLY_CONTACTS: set[str] = set(_parse_csv(os.getenv("AUTO_REPLY_CONTACTS") or ""))
HISTORY_MAX_MESSAGES: int = 500
