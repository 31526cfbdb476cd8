"""
Tests for message text preparation.
"""
import pytest

from translation_relay.core.message_filter import (
    has_ignored_prefix,
    is_translatable,
    strip_mentions
)


class TestStripMentions:

    def test_mentions_removed(self):
        assert strip_mentions("<@123> hi <@!456>") == "hi"

    def test_role_and_channel_mentions_kept(self):
        """Only user mentions are stripped."""
        assert strip_mentions("see <#789>") == "see <#789>"

    def test_none_content(self):
        assert strip_mentions(None) == ""


class TestIsTranslatable:

    @pytest.mark.parametrize("text", ["", "😀", "😀 🎉  👍", "👍🏽", "👨‍👩‍👧", "<:blob:1234>", "<a:dance:99> 🎉"])
    def test_nothing_to_translate(self, text):
        assert is_translatable(text) is False

    @pytest.mark.parametrize("text", ["hello", "こんにちは 😀", "ok 👍", ":not_an_emoji:"])
    def test_text_is_translatable(self, text):
        assert is_translatable(text) is True


class TestIgnoredPrefix:

    def test_other_bot_commands(self):
        assert has_ignored_prefix("v!start", ("v!", "m!"))
        assert has_ignored_prefix("m!play", ("v!", "m!"))
        assert not has_ignored_prefix("hello v!", ("v!", "m!"))
        assert not has_ignored_prefix("v!start", ())
