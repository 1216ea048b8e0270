#!/usr/bin/env python3
"""
Tests for the TransitionTable model.

Covers training, the sampling cascade (weighted successors, uniform
fallback, empty table), generation, the grid rendering and snapshot
round trips.
"""

import json
import pytest
from collections import Counter
from unittest.mock import MagicMock

from wordchain.models.markov_chain.errors import CorruptDataError, EmptyModelError
from wordchain.models.markov_chain.transition_table import (
    SNAPSHOT_FORMAT,
    SNAPSHOT_VERSION,
    TransitionTable,
)

DRAWS = 10000


@pytest.fixture
def mock_logger():
    """Create a mock logger for testing"""
    logger = MagicMock()
    logger.info = MagicMock()
    logger.warning = MagicMock()
    logger.error = MagicMock()
    return logger


@pytest.fixture
def food_table():
    """The two-sentence example table, seeded for stable statistics."""
    table = TransitionTable(seed=2024)
    table.ingest(["i", "want", "to", "eat"])
    table.ingest(["i", "want", "chinese", "food"])
    return table


def frequencies(draw, draws=DRAWS):
    counts = Counter(draw() for _ in range(draws))
    return {word: count / draws for word, count in counts.items()}


def snapshot(transitions, **overrides):
    data = {"format": SNAPSHOT_FORMAT, "version": SNAPSHOT_VERSION,
            "transitions": transitions}
    data.update(overrides)
    return data


class TestTraining:
    """record() and ingest()."""

    def test_record_counts_pairs(self):
        table = TransitionTable()
        table.record("a", "b")
        table.record("a", "b")
        table.record("a", "c")

        assert table.count("a", "b") == 2
        assert table.count("a", "c") == 1
        assert table.count("b", "a") == 0

    def test_record_makes_both_words_known(self):
        table = TransitionTable()
        table.record("first", "second")

        assert "first" in table
        assert "second" in table
        assert len(table) == 2
        assert table.successors("second") == {}

    def test_self_transition(self):
        table = TransitionTable()
        table.record("hello", "hello")
        table.record("hello", "hello")

        assert table.count("hello", "hello") == 2
        assert table.known_words == ("hello",)

    def test_known_words_in_first_seen_order(self):
        table = TransitionTable()
        table.ingest(["c", "a", "b", "a"])
        assert table.known_words == ("c", "a", "b")

    def test_ingest_matches_record_calls(self):
        ingested = TransitionTable()
        ingested.ingest(["a", "b", "c"])

        recorded = TransitionTable()
        recorded.record("a", "b")
        recorded.record("b", "c")

        assert ingested.to_dict() == recorded.to_dict()

    def test_ingest_returns_transition_count(self):
        table = TransitionTable()
        assert table.ingest(["a", "b", "c", "d"]) == 3

    @pytest.mark.parametrize("sequence", [[], ["lonely"]])
    def test_short_sequences_are_no_op(self, sequence):
        table = TransitionTable()
        assert table.ingest(sequence) == 0
        assert len(table) == 0

    def test_ingest_accepts_any_iterable(self):
        table = TransitionTable()
        table.ingest(iter(["x", "y"]))
        assert table.count("x", "y") == 1

    def test_sequences_are_not_bridged(self):
        table = TransitionTable()
        table.ingest(["a", "b"])
        table.ingest(["c", "d"])

        assert table.count("b", "c") == 0
        assert table.successors("b") == {}
        assert table.successors("a") == {"b": 1}

    def test_example_counts(self, food_table):
        assert food_table.successors("i") == {"want": 2}
        assert food_table.successors("want") == {"to": 1, "chinese": 1}
        assert food_table.successors("eat") == {}
        assert set(food_table.known_words) == {
            "i", "want", "to", "eat", "chinese", "food"}

    def test_successors_returns_a_copy(self, food_table):
        food_table.successors("i")["want"] = 99
        assert food_table.count("i", "want") == 2

    def test_successors_of_unknown_word(self, food_table):
        assert food_table.successors("pizza") == {}

    def test_stats(self, food_table):
        assert food_table.stats() == {
            "known_words": 6,
            "distinct_transitions": 5,
            "observed_transitions": 6,
            "terminal_words": 2,
        }


class TestSampling:
    """The successor sampling cascade."""

    def test_only_successor_always_chosen(self, food_table):
        assert {food_table.sample_next("i") for _ in range(500)} == {"want"}

    def test_successors_weighted_by_count(self, food_table):
        observed = frequencies(lambda: food_table.sample_next("want"))

        assert set(observed) == {"to", "chinese"}
        assert observed["to"] == pytest.approx(0.5, abs=0.03)
        assert observed["chinese"] == pytest.approx(0.5, abs=0.03)

    def test_uneven_weights(self):
        table = TransitionTable(seed=11)
        for _ in range(3):
            table.record("the", "cat")
        table.record("the", "dog")

        observed = frequencies(lambda: table.sample_next("the"))
        assert observed["cat"] == pytest.approx(0.75, abs=0.03)
        assert observed["dog"] == pytest.approx(0.25, abs=0.03)

    def test_terminal_word_falls_back_to_uniform(self):
        table = TransitionTable(seed=5)
        table.ingest(["a", "b", "c"])

        observed = frequencies(lambda: table.sample_next("c"))

        # c itself is among the candidates
        assert set(observed) == {"a", "b", "c"}
        for word in ("a", "b", "c"):
            assert observed[word] == pytest.approx(1 / 3, abs=0.03)

    def test_unknown_word_falls_back_to_uniform(self):
        table = TransitionTable(seed=6)
        table.ingest(["a", "b", "c"])

        observed = frequencies(lambda: table.sample_next("zebra"))

        assert set(observed) == {"a", "b", "c"}
        for word in ("a", "b", "c"):
            assert observed[word] == pytest.approx(1 / 3, abs=0.03)

    def test_sample_first_is_uniform(self, food_table):
        observed = frequencies(food_table.sample_first)

        assert set(observed) == set(food_table.known_words)
        for word in food_table.known_words:
            assert observed[word] == pytest.approx(1 / 6, abs=0.03)

    def test_sample_next_does_not_add_unknown_words(self, food_table):
        food_table.sample_next("pizza")
        assert "pizza" not in food_table
        assert len(food_table) == 6

    def test_empty_table_raises(self):
        table = TransitionTable()

        with pytest.raises(EmptyModelError):
            table.sample_first()
        with pytest.raises(EmptyModelError):
            table.sample_next("anything")

    def test_single_sequence_never_fails(self):
        table = TransitionTable(seed=1)
        table.ingest(["only", "words"])
        for _ in range(100):
            assert table.sample_next("words") in {"only", "words"}


class TestGeneration:
    """generate() and generate_text()."""

    @pytest.mark.parametrize("length", [0, 1, 3, 25])
    def test_generates_length_plus_one_words(self, food_table, length):
        assert len(list(food_table.generate(length))) == length + 1

    def test_default_length(self, food_table):
        assert len(list(food_table.generate())) == 51

    def test_generate_is_lazy(self, food_table):
        words = food_table.generate(10 ** 9)
        assert next(words) in food_table
        assert next(words) in food_table

    def test_consecutive_pairs_follow_the_table(self, food_table):
        words = list(food_table.generate(200))

        for word, next_word in zip(words, words[1:]):
            successors = food_table.successors(word)
            if successors:
                assert next_word in successors
            else:
                assert next_word in food_table

    def test_empty_table_raises_on_first_word(self):
        table = TransitionTable()
        with pytest.raises(EmptyModelError):
            list(table.generate(0))
        with pytest.raises(EmptyModelError):
            table.generate_text(5)

    @pytest.mark.parametrize("length", [-1, 1.5, "3", True])
    def test_invalid_length(self, food_table, length):
        with pytest.raises(ValueError):
            food_table.generate(length)

    def test_generate_text_joins_words(self, food_table):
        text = food_table.generate_text(4)
        words = text.split(" ")

        assert len(words) == 5
        assert all(word in food_table for word in words)

    def test_same_seed_same_text(self):
        def build(seed):
            table = TransitionTable(seed=seed)
            table.ingest("the cat sat on the mat and the dog sat on the cat".split())
            return table

        assert build(99).generate_text(30) == build(99).generate_text(30)


class TestRender:
    """The pipe-delimited grid."""

    def test_empty_table(self):
        assert TransitionTable().render() == ""

    def test_example_grid(self, food_table):
        expected = "\n".join([
            "|       |chinese|eat|food|i|to|want|",
            "|chinese|       |   |   1| |  |    |",
            "|    eat|       |   |    | |  |    |",
            "|   food|       |   |    | |  |    |",
            "|      i|       |   |    | |  |   2|",
            "|     to|       |  1|    | |  |    |",
            "|   want|      1|   |    | | 1|    |",
        ])
        assert food_table.render() == expected
        assert str(food_table) == expected

    def test_wide_counts_widen_column(self):
        table = TransitionTable()
        for _ in range(10):
            table.record("a", "b")

        assert table.render() == "\n".join([
            "| |a| b|",
            "|a| |10|",
            "|b| |  |",
        ])

    def test_repr(self, food_table):
        assert repr(food_table) == "TransitionTable(known_words=6, distinct_transitions=5)"


class TestSerialization:
    """Snapshot round trips and validation."""

    def test_round_trip_preserves_counts_and_words(self, food_table):
        restored = TransitionTable.deserialize(food_table.serialize())

        assert set(restored.known_words) == set(food_table.known_words)
        for word in food_table.known_words:
            assert restored.successors(word) == food_table.successors(word)

    def test_round_trip_keeps_first_seen_order(self):
        corpus = "the zebra sat on the mat and the cat and the dog sat".split()
        table = TransitionTable(seed=17)
        table.ingest(corpus)

        restored = TransitionTable.deserialize(table.serialize(), seed=17)

        assert restored.known_words == table.known_words
        for word in table.known_words:
            assert list(restored.successors(word)) == list(table.successors(word))

    def test_round_trip_generates_the_same_seeded_text(self):
        corpus = "the zebra sat on the mat and the cat and the dog sat".split()
        table = TransitionTable(seed=17)
        table.ingest(corpus)
        restored = TransitionTable.deserialize(table.serialize(), seed=17)

        assert restored.generate_text(20) == table.generate_text(20)

    def test_serialized_document_shape(self, food_table):
        document = json.loads(food_table.serialize())

        assert document["format"] == SNAPSHOT_FORMAT
        assert document["version"] == SNAPSHOT_VERSION
        assert document["transitions"]["i"] == {"want": 2}
        assert document["transitions"]["food"] == {}

    def test_round_trip_of_empty_table(self):
        restored = TransitionTable.deserialize(TransitionTable().serialize())
        assert len(restored) == 0
        with pytest.raises(EmptyModelError):
            restored.sample_first()

    def test_bytes_and_unicode_words(self):
        table = TransitionTable()
        table.ingest(["привет", "мир", "café"])

        blob = table.serialize().encode("utf-8")
        restored = TransitionTable.deserialize(blob)

        assert restored.count("привет", "мир") == 1
        assert restored.count("мир", "café") == 1
        assert "привет" in table.serialize()

    def test_restored_table_samples_like_the_saved_one(self, food_table):
        restored = TransitionTable.deserialize(food_table.serialize(), seed=3)
        assert {restored.sample_next("i") for _ in range(200)} == {"want"}

        observed = frequencies(lambda: restored.sample_next("want"))
        assert observed["to"] == pytest.approx(0.5, abs=0.03)

    def test_restored_table_keeps_training(self, food_table):
        restored = TransitionTable.deserialize(food_table.serialize())
        restored.ingest(["i", "want", "to", "sleep"])

        assert restored.count("i", "want") == 3
        assert restored.count("to", "sleep") == 1

    def test_zero_counts_are_accepted_but_not_stored(self):
        dense = snapshot({"a": {"a": 0, "b": 2}, "b": {"a": 0, "b": 0}})
        table = TransitionTable.from_dict(dense)

        assert table.successors("a") == {"b": 2}
        assert table.successors("b") == {}
        assert table.stats()["distinct_transitions"] == 1

    def test_unknown_fields_are_ignored(self):
        data = snapshot({"a": {"b": 1}, "b": {}}, max_value_length={"a": 1, "b": 1})
        table = TransitionTable.from_dict(data)
        assert table.count("a", "b") == 1

    def test_from_dict_logs_stats(self, mock_logger):
        TransitionTable.from_dict(snapshot({"a": {"b": 1}, "b": {}}), logger=mock_logger)

        mock_logger.info.assert_called_once()
        args, kwargs = mock_logger.info.call_args
        assert args[0] == "Transition table loaded"
        assert kwargs["extra"]["metrics"]["known_words"] == 2

    @pytest.mark.parametrize("blob", [
        "",
        "not json",
        "{\"format\": ",
        "[1, 2, 3]",
        "42",
        b"\xff\xfe\x00",
    ])
    def test_malformed_blobs(self, blob):
        with pytest.raises(CorruptDataError):
            TransitionTable.deserialize(blob)

    def test_non_text_blob(self):
        with pytest.raises(CorruptDataError):
            TransitionTable.deserialize(12345)

    @pytest.mark.parametrize("data", [
        snapshot({"a": {"b": -1}, "b": {}}),
        snapshot({"a": {"b": 2 ** 63}, "b": {}}),
        snapshot({"a": {"b": 2 ** 62, "c": 2 ** 62}, "b": {}, "c": {}}),
        snapshot({"a": {"b": 1.0}, "b": {}}),
        snapshot({"a": {"b": "1"}, "b": {}}),
        snapshot({"a": {"b": True}, "b": {}}),
        snapshot({"a": ["b"], "b": {}}),
        snapshot({"a": {"b": 1}}),
        snapshot(["a", "b"]),
        snapshot(None),
        snapshot({"a": {}}, version=2),
        snapshot({"a": {}}, format="something.else"),
        {"transitions": {"a": {}}},
        {"format": SNAPSHOT_FORMAT, "version": SNAPSHOT_VERSION},
    ])
    def test_invalid_snapshots(self, data):
        with pytest.raises(CorruptDataError):
            TransitionTable.from_dict(data)

    def test_negative_count_blob(self):
        blob = json.dumps(snapshot({"a": {"b": -3}, "b": {}}))
        with pytest.raises(CorruptDataError, match="negative"):
            TransitionTable.deserialize(blob)

    def test_oversized_row_total_blob(self):
        blob = json.dumps(snapshot({"a": {"b": 2 ** 62, "c": 2 ** 62}, "b": {}, "c": {}}))
        with pytest.raises(CorruptDataError, match="add up to"):
            TransitionTable.deserialize(blob)

    def test_largest_row_total_still_samples(self):
        big = 2 ** 62
        data = snapshot({"a": {"b": big, "c": big - 1}, "b": {}, "c": {}})
        table = TransitionTable.from_dict(data, seed=0)

        assert table.sample_next("a") in {"b", "c"}

    def test_duplicate_keys_rejected(self):
        blob = ('{"format": "%s", "version": %d, "transitions": '
                '{"a": {"b": 1}, "a": {"b": 2}, "b": {}}}' % (SNAPSHOT_FORMAT, SNAPSHOT_VERSION))
        with pytest.raises(CorruptDataError, match="Duplicate"):
            TransitionTable.deserialize(blob)

    def test_failed_load_does_not_log_success(self, mock_logger):
        with pytest.raises(CorruptDataError):
            TransitionTable.from_dict(snapshot({"a": {"b": -1}, "b": {}}), logger=mock_logger)
        mock_logger.info.assert_not_called()
