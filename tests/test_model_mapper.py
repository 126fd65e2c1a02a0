from zeroai.mapper import KNOWN_PREFIXES, ModelMapper


def test_split_id_known_prefix() -> None:
    mapper = ModelMapper()
    assert mapper.split_id("openai/gpt-4o") == ("openai", "gpt-4o")
    assert mapper.split_id("anthropic/claude-sonnet-4-5") == (
        "anthropic",
        "claude-sonnet-4-5",
    )


def test_split_id_prefers_longest_prefix() -> None:
    mapper = ModelMapper()
    assert mapper.split_id("zai-coding/glm-4.6") == ("zai-coding", "glm-4.6")
    assert mapper.split_id("zai/glm-4.6") == ("zai", "glm-4.6")


def test_split_id_keeps_nested_model_path() -> None:
    mapper = ModelMapper()
    assert mapper.split_id("openrouter/anthropic/claude-3.5-sonnet") == (
        "openrouter",
        "anthropic/claude-3.5-sonnet",
    )


def test_split_id_prefix_match_is_case_insensitive() -> None:
    assert ModelMapper().split_id("OpenAI/gpt-4o") == ("openai", "gpt-4o")


def test_split_id_unknown_prefix_splits_on_first_slash() -> None:
    assert ModelMapper().split_id("acme/widget-1") == ("acme", "widget-1")


def test_split_id_aliases_are_known_prefixes() -> None:
    mapper = ModelMapper()
    assert "gemini-cli" in KNOWN_PREFIXES
    assert mapper.split_id("gemini-cli/gemini-2.5-pro") == (
        "gemini-cli",
        "gemini-2.5-pro",
    )


def test_split_id_without_separator_or_parts_returns_none() -> None:
    mapper = ModelMapper()
    assert mapper.split_id("gpt-4o") is None
    assert mapper.split_id("") is None
    assert mapper.split_id("openai/") is None
    assert mapper.split_id("/gpt-4o") is None


def test_custom_prefix_table() -> None:
    mapper = ModelMapper(prefixes=("a", "a-b"))
    assert mapper.prefixes == ("a-b", "a")
    assert mapper.split_id("a-b/m") == ("a-b", "m")
