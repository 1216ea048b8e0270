"""
First-order word transition table.

The table maps every known word to the words that followed it in the
training sequences, together with how many times each pair was observed:

    {
        "i":       {"want": 2},
        "want":    {"to": 1, "chinese": 1},
        "to":      {"eat": 1},
        "eat":     {},
        "chinese": {"food": 1},
        "food":    {},
    }

Only pairs that were actually observed are stored. Every word that was ever
seen owns a row, even when nothing followed it, so the set of known words is
simply the set of row keys.

Sampling follows a fixed cascade: a word with recorded successors is followed
by one of them, weighted by count; any other word (unknown, or only ever seen
at the end of a sequence) is followed by a uniformly chosen known word; an
empty table cannot generate anything and raises EmptyModelError.
"""

import json
import logging

import numpy as np

from wordchain.models.markov_chain.errors import CorruptDataError, EmptyModelError
from wordchain.models.markov_chain.weighted_sampler import WeightedSampler

SNAPSHOT_FORMAT = "wordchain.transition_table"
SNAPSHOT_VERSION = 1

DEFAULT_TEXT_LENGTH = 50

# Sampler weights are prefix-summed as int64
MAX_ROW_TOTAL = int(np.iinfo(np.int64).max)


def _reject_duplicate_keys(pairs):
    # json.loads keeps the last duplicate silently; a snapshot never has any
    result = {}
    for key, value in pairs:
        if key in result:
            raise CorruptDataError(f"Duplicate key in snapshot: {key!r}")
        result[key] = value
    return result


class TransitionTable:
    """
    Sparse word -> (next word -> count) table with weighted sampling.

    The table is mutated only through record() (directly or via ingest())
    and replaced wholesale only by from_dict()/deserialize(). It holds no
    locks, so concurrent writers must be serialized by the caller.
    """

    def __init__(self, seed=None, rng=None, logger=None):
        """
        Initializes an empty table.

        Args:
            seed (int, optional): Seed for a reproducible random source
            rng (numpy.random.Generator, optional): Explicit random source,
                takes precedence over seed
            logger (logging.Logger, optional): Logger for model activity,
                defaults to this module's logger
        """
        self.transitions = {}
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.logger = logger or logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------
    def record(self, word, next_word):
        """
        Count one occurrence of next_word immediately following word.

        Either word becomes known if it was not before.
        """
        successors = self.transitions.setdefault(word, {})
        self.transitions.setdefault(next_word, {})
        successors[next_word] = successors.get(next_word, 0) + 1

    def ingest(self, sequence):
        """
        Record every consecutive pair of a token sequence.

        Pairs are never bridged across separate calls, so the last word of
        one sequence is not linked to the first word of the next.

        Args:
            sequence (list of str): Tokens in reading order

        Returns:
            int: Number of transitions recorded (0 for fewer than two tokens)
        """
        words = list(sequence)
        if len(words) < 2:
            return 0

        for previous_word, word in zip(words, words[1:]):
            self.record(previous_word, word)

        return len(words) - 1

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    @property
    def known_words(self):
        """Known words in the order they were first seen."""
        return tuple(self.transitions)

    def __len__(self):
        return len(self.transitions)

    def __contains__(self, word):
        return word in self.transitions

    def count(self, word, next_word):
        return self.transitions.get(word, {}).get(next_word, 0)

    def successors(self, word):
        """Copy of the successor counts of word, empty if it has none."""
        return dict(self.transitions.get(word, {}))

    def stats(self):
        """
        Summary counts of the table, used for logging training runs.

        Returns:
            dict: known_words, distinct_transitions, observed_transitions and
            terminal_words (known words with no recorded successor)
        """
        return {
            "known_words": len(self.transitions),
            "distinct_transitions": sum(len(row) for row in self.transitions.values()),
            "observed_transitions": sum(
                sum(row.values()) for row in self.transitions.values()),
            "terminal_words": sum(1 for row in self.transitions.values() if not row),
        }

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------
    def _uniform_sampler(self):
        if not self.transitions:
            raise EmptyModelError(
                "Cannot choose a word: the table has no training data")
        return WeightedSampler(((word, 1) for word in self.transitions), rng=self.rng)

    def sample_first(self):
        """
        Choose a known word uniformly at random.

        Raises:
            EmptyModelError: If the table has no known words
        """
        return self._uniform_sampler().next()

    def sample_next(self, word):
        """
        Choose the word that follows word.

        Recorded successors are chosen with probability proportional to their
        counts. Unknown words and words with no recorded successor fall back
        to a uniform choice over all known words, word itself included.

        Args:
            word (str): The current word

        Returns:
            str: The next word

        Raises:
            EmptyModelError: If the table has no known words
        """
        successors = self.transitions.get(word)
        if successors:
            return WeightedSampler(successors, rng=self.rng).next()
        return self._uniform_sampler().next()

    def generate(self, length=DEFAULT_TEXT_LENGTH):
        """
        Lazily generate length + 1 words.

        The first word is drawn with sample_first(), each following word with
        sample_next() on the word before it.

        Args:
            length (int): Number of words after the first one

        Returns:
            generator: Yields the words in generation order

        Raises:
            ValueError: If length is negative
            EmptyModelError: On the first draw, if the table is empty
        """
        if isinstance(length, bool) or not isinstance(length, (int, np.integer)):
            raise ValueError(f"length must be an integer, got {type(length).__name__}")
        if length < 0:
            raise ValueError(f"length must be non-negative, got {length}")
        return self._generate(int(length))

    def _generate(self, length):
        word = self.sample_first()
        yield word
        for _ in range(length):
            word = self.sample_next(word)
            yield word

    def generate_text(self, length=DEFAULT_TEXT_LENGTH):
        """Generate length + 1 words joined by single spaces."""
        return " ".join(self.generate(length))

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------
    def render(self):
        """
        Render the table as a pipe-delimited grid.

        Rows are the current word and columns the next word, both sorted.
        Each column is as wide as the longer of its word and its largest
        count; zero cells are left blank.

            |       |chinese|eat|food|i|want|
            |chinese|       |   |   1| |    |
        """
        if not self.transitions:
            return ""

        words = sorted(self.transitions)
        label_width = max(len(word) for word in words)
        widths = {word: len(word) for word in words}
        for row in self.transitions.values():
            for next_word, count in row.items():
                widths[next_word] = max(widths[next_word], len(str(count)))

        lines = ["|" + " " * label_width + "|"
                 + "|".join(word.rjust(widths[word]) for word in words) + "|"]
        for word in words:
            row = self.transitions[word]
            cells = []
            for next_word in words:
                count = row.get(next_word, 0)
                cells.append((str(count) if count else "").rjust(widths[next_word]))
            lines.append("|" + word.rjust(label_width) + "|" + "|".join(cells) + "|")

        return "\n".join(lines)

    def __str__(self):
        return self.render()

    def __repr__(self):
        stats = self.stats()
        return (f"TransitionTable(known_words={stats['known_words']}, "
                f"distinct_transitions={stats['distinct_transitions']})")

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def to_dict(self):
        """
        Snapshot the full table as plain Python data.

        Returns:
            dict: format, version and the word -> (word -> count) mapping.
            Words without successors map to an empty dict.
        """
        return {
            "format": SNAPSHOT_FORMAT,
            "version": SNAPSHOT_VERSION,
            "transitions": {word: dict(row) for word, row in self.transitions.items()},
        }

    def serialize(self):
        """
        Snapshot the full table as a JSON document.

        Returns:
            str: Indented JSON, words in first-seen order
        """
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=2)

    @classmethod
    def from_dict(cls, data, seed=None, rng=None, logger=None):
        """
        Rebuild a table from a to_dict() snapshot.

        Zero counts are accepted (a dense snapshot loads fine) but are not
        stored. The counts of a row must add up to at most MAX_ROW_TOTAL.
        Unknown top-level fields are ignored.

        Args:
            data (dict): The snapshot
            seed, rng, logger: Passed to the new table

        Returns:
            TransitionTable: The rebuilt table

        Raises:
            CorruptDataError: If the snapshot does not have the expected shape
        """
        if not isinstance(data, dict):
            raise CorruptDataError(
                f"Snapshot must be an object, got {type(data).__name__}")
        if data.get("format") != SNAPSHOT_FORMAT:
            raise CorruptDataError(f"Unrecognized snapshot format: {data.get('format')!r}")
        if data.get("version") != SNAPSHOT_VERSION:
            raise CorruptDataError(f"Unsupported snapshot version: {data.get('version')!r}")

        raw_transitions = data.get("transitions")
        if not isinstance(raw_transitions, dict):
            raise CorruptDataError("Snapshot has no 'transitions' object")

        transitions = {}
        for word, raw_row in raw_transitions.items():
            if not isinstance(word, str):
                raise CorruptDataError(f"Word must be a string, got {word!r}")
            if not isinstance(raw_row, dict):
                raise CorruptDataError(f"Successors of {word!r} must be an object")

            row = {}
            for next_word, count in raw_row.items():
                if not isinstance(next_word, str):
                    raise CorruptDataError(f"Word must be a string, got {next_word!r}")
                if isinstance(count, bool) or not isinstance(count, int):
                    raise CorruptDataError(
                        f"Count for ({word!r}, {next_word!r}) must be an integer, got {count!r}")
                if count < 0:
                    raise CorruptDataError(
                        f"Count for ({word!r}, {next_word!r}) is negative: {count}")
                if count > 0:
                    row[next_word] = count
            if sum(row.values()) > MAX_ROW_TOTAL:
                raise CorruptDataError(
                    f"Counts following {word!r} add up to more than {MAX_ROW_TOTAL}")
            transitions[word] = row

        for word, row in transitions.items():
            for next_word in row:
                if next_word not in transitions:
                    raise CorruptDataError(
                        f"Successor {next_word!r} of {word!r} is not a known word")

        table = cls(seed=seed, rng=rng, logger=logger)
        table.transitions = transitions
        table.logger.info("Transition table loaded", extra={"metrics": table.stats()})
        return table

    @classmethod
    def deserialize(cls, blob, seed=None, rng=None, logger=None):
        """
        Rebuild a table from a serialize() snapshot.

        Args:
            blob (str or bytes): JSON text; bytes must be UTF-8
            seed, rng, logger: Passed to the new table

        Returns:
            TransitionTable: The rebuilt table

        Raises:
            CorruptDataError: If the blob is not a valid snapshot
        """
        if isinstance(blob, (bytes, bytearray)):
            try:
                blob = blob.decode("utf-8")
            except UnicodeDecodeError as e:
                raise CorruptDataError(f"Snapshot is not valid UTF-8: {e}") from e
        if not isinstance(blob, str):
            raise CorruptDataError(
                f"Snapshot must be text or bytes, got {type(blob).__name__}")

        try:
            data = json.loads(blob, object_pairs_hook=_reject_duplicate_keys)
        except json.JSONDecodeError as e:
            raise CorruptDataError(f"Snapshot is not valid JSON: {e}") from e

        return cls.from_dict(data, seed=seed, rng=rng, logger=logger)
