from __future__ import annotations

from zeroai.providers import PROVIDER_ALIASES, ProviderKind


def _build_prefix_table() -> tuple[str, ...]:
    prefixes = {kind.value for kind in ProviderKind} | set(PROVIDER_ALIASES)
    # Longest first so "zai-coding/" wins over "zai/".
    return tuple(sorted(prefixes, key=lambda prefix: (-len(prefix), prefix)))


KNOWN_PREFIXES: tuple[str, ...] = _build_prefix_table()


class ModelMapper:
    """Splits ``"provider/model"`` ids into their prefix and short model name."""

    def __init__(self, prefixes: tuple[str, ...] = KNOWN_PREFIXES) -> None:
        self._prefixes = tuple(
            sorted(prefixes, key=lambda prefix: (-len(prefix), prefix))
        )

    @property
    def prefixes(self) -> tuple[str, ...]:
        return self._prefixes

    def split_id(self, full_id: str) -> tuple[str, str] | None:
        normalized = full_id.strip()
        if not normalized:
            return None

        lowered = normalized.lower()
        for prefix in self._prefixes:
            boundary = f"{prefix}/"
            if lowered.startswith(boundary) and len(normalized) > len(boundary):
                return prefix, normalized[len(boundary) :]

        if "/" not in normalized:
            return None
        provider, _, model_id = normalized.partition("/")
        provider = provider.strip()
        model_id = model_id.strip()
        if not provider or not model_id:
            return None
        return provider, model_id
