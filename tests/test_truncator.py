"""Tests for sentence-aware truncation."""

from jsonld_engine.truncator import truncate, truncation_indicator


class TestTruncate:
    def test_short_text_untouched(self):
        result = truncate("Short text.", 100)
        assert result.content == "Short text."
        assert result.truncated is False
        assert result.original_length == result.truncated_length == 11

    def test_cuts_after_late_sentence_end(self):
        """A sentence ending past 70% of the budget is used as the cut point, trailing space kept."""
        text = "a" * 80 + ". " + "b" * 100
        result = truncate(text, 100)
        assert result.truncated is True
        assert result.content == "a" * 80 + ". "
        assert result.truncated_length == 82
        assert result.original_length == len(text)

    def test_hard_cut_when_sentence_end_too_early(self):
        """A sentence ending before 70% of the budget is ignored."""
        text = "a" * 10 + ". " + "b" * 200
        result = truncate(text, 100)
        assert len(result.content) == 100
        assert result.content == text[:100]

    def test_question_and_exclamation_count(self):
        text = "x" * 75 + "? " + "y" * 50
        assert truncate(text, 100).content.endswith("? ")
        text = "x" * 75 + "! " + "y" * 50
        assert truncate(text, 100).content.endswith("! ")

    def test_never_exceeds_budget(self):
        text = "word " * 1000
        assert len(truncate(text, 333).content) <= 333

    def test_idempotent(self):
        """Truncating an already truncated text changes nothing."""
        text = ("Sentence number one. " * 50) + "tail without end"
        once = truncate(text, 500)
        twice = truncate(once.content, 500)
        assert twice.content == once.content
        assert twice.truncated is False


class TestIndicator:
    def test_format(self):
        assert truncation_indicator(100, 250) == "[Content truncated: showing 100 of 250 characters]"
