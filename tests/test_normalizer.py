"""
Score normalisation and word coercion.

Run: python -m pytest tests/test_normalizer.py -v
"""

import math

import pytest

from cloudlayout_core import InvalidInput, Word, coerce_word, coerce_words, normalize_words


class TestNormalizeWords:

    def test_scores_sum_to_one(self):
        words = [Word("a", 3.0), Word("b", 1.5), Word("c", 0.25), Word("d", 7.0)]
        normalized = normalize_words(words)
        assert math.isclose(sum(w.score for w in normalized), 1.0, abs_tol=1e-9)

    def test_sorted_descending(self):
        normalized = normalize_words([Word("low", 1), Word("high", 5), Word("mid", 3)])
        assert [w.text for w in normalized] == ["high", "mid", "low"]

    def test_ties_keep_input_order(self):
        normalized = normalize_words([Word("first", 2), Word("top", 4), Word("second", 2), Word("third", 2)])
        assert [w.text for w in normalized] == ["top", "first", "second", "third"]
        assert [w.index for w in normalized] == [1, 0, 2, 3]

    def test_caller_sequence_untouched(self):
        words = [Word("b", 1), Word("a", 2)]
        snapshot = list(words)
        normalize_words(words)
        assert words == snapshot

    def test_source_word_is_preserved(self):
        word = Word("Hello", 1.0)
        normalized = normalize_words([word, Word("World", 0.5)])
        assert normalized[0].source is word
        assert math.isclose(normalized[0].score, 2 / 3)

    def test_zero_total_rejected(self):
        with pytest.raises(InvalidInput):
            normalize_words([Word("a", 0), Word("b", 0)])

    def test_empty_rejected(self):
        with pytest.raises(InvalidInput):
            normalize_words([])

    def test_negative_rejected(self):
        with pytest.raises(InvalidInput):
            normalize_words([Word("a", 5), Word("b", -1)])

    def test_nan_rejected(self):
        with pytest.raises(InvalidInput):
            normalize_words([Word("a", float("nan"))])

    def test_zero_score_allowed_when_total_positive(self):
        normalized = normalize_words([Word("a", 1), Word("b", 0)])
        assert normalized[-1].score == 0.0


class TestCoerceWords:

    def test_mapping_and_pair(self):
        assert coerce_words([{"text": "a", "score": 2}, ("b", "1.5")]) == [Word("a", 2.0), Word("b", 1.5)]

    def test_weight_alias(self):
        assert coerce_word({"text": "a", "weight": 3}) == Word("a", 3.0)

    def test_word_passthrough(self):
        word = Word("x", 1.0)
        assert coerce_word(word) is word

    @pytest.mark.parametrize("value", [
        {"text": "a"},
        {"text": "", "score": 1},
        {"text": "a", "score": "lots"},
        ("a", 1, 2),
        42,
    ])
    def test_rejects_malformed(self, value):
        with pytest.raises(InvalidInput):
            coerce_word(value)
