"""Tests for provider selection and language detection."""

import pytest
from hypothesis import given, strategies as st

from mangamachine.orchestration.models import ModelPreference, ProviderName
from mangamachine.orchestration.selector import (
    LANGUAGE_AFFINITY,
    alternate_provider,
    detect_language,
    select_provider,
)


class TestDetectLanguage:
    def test_chinese_text(self):
        assert detect_language("小明走进了教室，看见了老师。") == "zh"

    def test_english_text(self):
        assert detect_language("A boy walks into the classroom.") == "en"

    def test_empty_text_defaults_to_english(self):
        assert detect_language("") == "en"

    def test_sparse_ideographs_stay_english(self):
        text = "The sign on the wall said 门 and nothing else at all, really."
        assert detect_language(text) == "en"


class TestSelectProvider:
    @pytest.mark.parametrize("tag", ["zh", "zh-CN", "zh_tw", "ZH-Hans", "zh-hant"])
    def test_chinese_tags_route_to_volcengine(self, tag):
        assert select_provider(tag) is ProviderName.VOLCENGINE

    @pytest.mark.parametrize("tag", ["en", "ja", "ko", "", None])
    def test_other_tags_route_to_gemini(self, tag):
        assert select_provider(tag) is ProviderName.GEMINI

    def test_auto_string_preference(self):
        assert select_provider("zh", "auto") is ProviderName.VOLCENGINE

    @given(language=st.text(max_size=12))
    def test_explicit_gemini_always_wins(self, language):
        assert select_provider(language, ModelPreference.GEMINI) is ProviderName.GEMINI

    @given(language=st.text(max_size=12))
    def test_explicit_volcengine_always_wins(self, language):
        assert select_provider(language, "volcengine") is ProviderName.VOLCENGINE

    @given(language=st.text(max_size=12))
    def test_auto_is_pure(self, language):
        first = select_provider(language, ModelPreference.AUTO)
        assert first is select_provider(language, ModelPreference.AUTO)
        expected = LANGUAGE_AFFINITY.get(language.strip().lower().replace("_", "-"), ProviderName.GEMINI)
        assert first is expected

    def test_unknown_preference_rejected(self):
        with pytest.raises(ValueError):
            select_provider("en", "dall-e")


class TestAlternateProvider:
    def test_alternates_are_symmetric(self):
        for provider in ProviderName:
            assert alternate_provider(alternate_provider(provider)) is provider
            assert alternate_provider(provider) is not provider
