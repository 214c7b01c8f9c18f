"""Tests for per-language validation rules and pinyin matching."""

import pytest

from wordseed.core.language import (
    LATIN_MARKER,
    pinyin_key,
    pinyin_matches,
    rules_for,
    supported_languages,
)


class TestChineseRules:
    """Chinese text is validated character by character."""

    @pytest.fixture
    def rules(self):
        return rules_for("zh")

    @pytest.fixture
    def allowed(self, rules):
        return rules.allowed_tokens(["我", "喜欢", "吗"], target="猫")

    def test_known_characters_pass(self, rules, allowed):
        assert rules.find_illegal("我喜欢猫", allowed) == []

    def test_unknown_character_reported(self, rules, allowed):
        assert rules.find_illegal("我喜欢狗", allowed) == ["狗"]

    def test_illegal_characters_in_first_seen_order(self, rules, allowed):
        assert rules.find_illegal("狗鸟狗我", allowed) == ["狗", "鸟"]

    def test_digits_punctuation_and_emoji_allowed(self, rules, allowed):
        assert rules.find_illegal("我 123！猫？😀 (喜欢)", allowed) == []

    def test_latin_letters_collapse_to_marker(self, rules, allowed):
        assert rules.find_illegal("我 like cats", allowed) == [LATIN_MARKER]

    def test_blank_marker_ignored(self, rules, allowed):
        assert rules.find_illegal("我喜欢____吗", allowed) == []

    def test_extra_words_extend_allowed_set(self, rules):
        allowed = rules.allowed_tokens(["我"], target="猫", extra_words=["狗"])
        assert rules.is_valid("我狗猫", allowed)

    def test_multi_character_words_split_into_characters(self, rules):
        assert rules.extract_tokens(["喜欢", "动物"]) == {"喜", "欢", "动", "物"}


class TestJapaneseRules:
    """Kanji must be known; kana are always allowed."""

    def test_kana_always_allowed(self):
        rules = rules_for("ja")
        allowed = rules.allowed_tokens([], target="猫")
        assert rules.find_illegal("猫がすきです。ネコ！", allowed) == []

    def test_unknown_kanji_reported(self):
        rules = rules_for("ja")
        allowed = rules.allowed_tokens(["猫"])
        assert rules.find_illegal("犬がすき", allowed) == ["犬"]

    def test_only_kanji_are_tokens(self):
        assert rules_for("ja").tokens("食べる") == ["食"]


class TestSpaceDelimitedRules:
    """Space-delimited languages are validated word by word."""

    def test_case_insensitive(self):
        rules = rules_for("en")
        allowed = rules.allowed_tokens(["I", "like"], target="cats")
        assert rules.find_illegal("I like Cats!", allowed) == []

    def test_unknown_word_reported(self):
        rules = rules_for("en")
        allowed = rules.allowed_tokens(["I", "like"], target="cats")
        assert rules.find_illegal("I like dogs and cats", allowed) == ["dogs", "and"]

    def test_numbers_allowed(self):
        rules = rules_for("en")
        allowed = rules.allowed_tokens(["I", "have"], target="cats")
        assert rules.is_valid("I have 3 cats.", allowed)

    def test_swedish_letters_are_word_characters(self):
        rules = rules_for("sv")
        allowed = rules.allowed_tokens(["jag", "är"], target="glad")
        assert rules.find_illegal("Jag är glad och trött", allowed) == ["och", "trött"]

    def test_blank_splits_words(self):
        rules = rules_for("en")
        allowed = rules.allowed_tokens(["I", "have", "a"])
        assert rules.find_illegal("I have a ____.", allowed) == []

    def test_unknown_language_defaults_to_words(self):
        assert rules_for("de").by_word is True

    def test_supported_languages(self):
        assert supported_languages() == ["en", "ja", "sv", "zh"]


class TestPinyin:
    """Tone marks and tone numbers compare equal."""

    def test_tone_marks(self):
        assert pinyin_key("nǐ hǎo") == ("nihao", (3, 3))

    def test_tone_numbers(self):
        assert pinyin_key("Ni3 Hao3") == ("nihao", (3, 3))

    @pytest.mark.parametrize("response", ["lǜ", "lu:4", "lv4", "LÜ4"])
    def test_u_umlaut_spellings(self, response):
        assert pinyin_key(response) == ("lv", (4,))

    @pytest.mark.parametrize("response", ["ma1ma", "ma1 ma5", "mā ma", "MA1MA0"])
    def test_neutral_tone_ignored(self, response):
        assert pinyin_matches("māma", response)

    def test_wrong_tone_rejected(self):
        assert not pinyin_matches("nǐ hǎo", "ni2 hao3")

    def test_missing_tone_rejected(self):
        assert not pinyin_matches("māo", "mao")

    def test_empty_values_never_match(self):
        assert not pinyin_matches(None, "mao1")
        assert not pinyin_matches("māo", "")
        assert not pinyin_matches("-", "-")
