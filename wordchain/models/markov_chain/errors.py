"""
Exceptions raised by the word chain model.

All of them derive from MarkovChainError so callers wrapping the model
(the CLI, notebooks) can catch a single type.
"""


class MarkovChainError(Exception):
    """Base class for every error raised by the chain."""


class EmptyModelError(MarkovChainError):
    """Raised when sampling from a table that has never seen a word."""


class InvalidWeightError(MarkovChainError, ValueError):
    """Raised when a sampler gets an empty candidate set or a non-positive weight."""


class CorruptDataError(MarkovChainError, ValueError):
    """Raised when a snapshot cannot be turned back into a transition table."""
