"""Projection of fetched episode lists to filler episode numbers."""

from __future__ import annotations

from typing import Iterable

from .common.types import EpisodeRecord, FillerSet


def filler_numbers(episodes: Iterable[EpisodeRecord]) -> FillerSet:
    """Return the episode numbers flagged as filler in *episodes*.

    A number appearing more than once is included when any of its records is
    flagged.
    """

    return frozenset(episode.number for episode in episodes if episode.filler)


__all__ = ["filler_numbers"]
