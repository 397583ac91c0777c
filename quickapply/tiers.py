"""Ordered strategy pipelines: the first tier that decides wins."""
from __future__ import annotations

from typing import Callable, Generic, Sequence, TypeVar

from quickapply.log import get_logger

log = get_logger(__name__)

S = TypeVar("S")
R = TypeVar("R")


class TierPipeline(Generic[S, R]):
    """Runs (tag, strategy) pairs in order over one subject.

    A strategy returns None for "no signal". A strategy that raises is
    logged and treated as no signal; it never aborts the pipeline.
    """

    def __init__(self, component: str, tiers: Sequence[tuple[str, Callable[[S], R | None]]]) -> None:
        self.component = component
        self.tiers = tuple(tiers)

    def first(self, subject: S) -> tuple[str, R] | None:
        for tag, strategy in self.tiers:
            try:
                result = strategy(subject)
            except Exception as exc:
                log.debug("%s tier %s raised %s: %s", self.component, tag, type(exc).__name__, exc)
                continue
            if result is not None:
                return tag, result
        return None
