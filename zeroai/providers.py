from __future__ import annotations

from enum import Enum


class ProviderKind(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    VERTEX = "vertex"
    OLLAMA = "ollama"
    OPENROUTER = "openrouter"
    GROQ = "groq"
    DEEPSEEK = "deepseek"
    XAI = "xai"
    TOGETHER = "together"
    FIREWORKS = "fireworks"
    NEBIUS = "nebius"
    SILICONFLOW = "siliconflow"
    ZHIPUAI = "zhipuai"
    ZAI = "zai"
    ZAI_CODING = "zai-coding"

    @classmethod
    def from_lower_str(cls, value: str) -> ProviderKind | None:
        normalized = value.strip().lower()
        if not normalized:
            return None
        alias = PROVIDER_ALIASES.get(normalized)
        if alias is not None:
            return alias
        try:
            return cls(normalized)
        except ValueError:
            return None

    @classmethod
    def from_model(cls, model: str) -> ProviderKind | None:
        """Infer the provider from a bare model name."""
        name = model.strip().lower()
        if not name:
            return None
        if name.startswith(("gpt-", "chatgpt-", "codex-")):
            return cls.OPENAI
        if name.startswith(("o1", "o3", "o4")) and (len(name) == 2 or name[2] == "-"):
            return cls.OPENAI
        if name.startswith("claude"):
            return cls.ANTHROPIC
        if name.startswith("gemini"):
            return cls.GEMINI
        if name.startswith("grok"):
            return cls.XAI
        if name.startswith("deepseek"):
            return cls.DEEPSEEK
        if name.startswith("glm-"):
            return cls.ZAI
        if "/" not in name and ":" in name:
            # Ollama tags look like "gemma3:1b".
            return cls.OLLAMA
        return None


PROVIDER_ALIASES: dict[str, ProviderKind] = {
    "google": ProviderKind.GEMINI,
    "gemini-cli": ProviderKind.GEMINI,
    "antigravity": ProviderKind.GEMINI,
    "zhipu": ProviderKind.ZHIPUAI,
}
