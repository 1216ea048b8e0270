from collections.abc import Mapping

import numpy as np

from wordchain.models.markov_chain.errors import InvalidWeightError


class WeightedSampler:
    """
    Draws items with probability proportional to positive integer weights.

    The weights are prefix-summed once at construction. Each draw picks an
    integer uniformly in [0, total) and returns the first item whose
    cumulative weight exceeds it. Draws do not consume items, so one sampler
    can be reused for any number of independent draws.
    """

    def __init__(self, weighted_items, rng=None):
        """
        Args:
            weighted_items (Mapping or iterable): Item -> weight mapping, or an
                iterable of (item, weight) pairs
            rng (numpy.random.Generator, optional): Random source. A fresh
                entropy-seeded generator is used when omitted.

        Raises:
            InvalidWeightError: If there are no items or a weight is not a
                strictly positive integer
        """
        if isinstance(weighted_items, Mapping):
            pairs = list(weighted_items.items())
        else:
            pairs = list(weighted_items)

        if not pairs:
            raise InvalidWeightError("Cannot sample from an empty candidate set")

        for item, weight in pairs:
            if isinstance(weight, bool) or not isinstance(weight, (int, np.integer)):
                raise InvalidWeightError(
                    f"Weight for {item!r} must be an integer, got {type(weight).__name__}")
            if weight <= 0:
                raise InvalidWeightError(
                    f"Weight for {item!r} must be positive, got {weight}")

        self.items = tuple(item for item, _ in pairs)
        self.cumulative_weights = np.cumsum(
            [int(weight) for _, weight in pairs], dtype=np.int64)
        self.rng = rng if rng is not None else np.random.default_rng()

    @property
    def total_weight(self):
        return int(self.cumulative_weights[-1])

    def __len__(self):
        return len(self.items)

    def next(self):
        """
        Draw one item.

        Returns:
            The selected item
        """
        draw = self.rng.integers(0, self.total_weight)
        index = int(np.searchsorted(self.cumulative_weights, draw, side="right"))
        return self.items[index]
