"""Throttle meter presentation recomputation without losing sample fidelity.

Meters refresh at 10 Hz but most ticks barely move the needle.  The
:class:`RenderChangeFilter` compares each incoming sample against the
last *rendered* one and only rebuilds the derived presentation artifact
(for example a list of lit VU segments) when some component moved by at
least ``threshold``.  The raw sample stored in
:class:`telemetry.meters.MixerLevelStore` is always the latest exact
value; this filter only decides whether the view needs rebuilding.
"""
from __future__ import annotations

from typing import Callable, Generic, List, Optional, Sequence, TypeVar

import numpy as np

RENDER_THRESHOLD = 0.001

SEGMENT_GREEN = "green"
SEGMENT_YELLOW = "yellow"
SEGMENT_RED = "red"
SEGMENT_OFF = "off"

A = TypeVar("A")


def sample_vector(sample: Sequence[float] | float) -> np.ndarray:
    """Return ``sample`` as a flat float vector."""

    return np.atleast_1d(np.asarray(sample, dtype=float)).reshape(-1)


def should_render(
    new: Sequence[float] | float,
    last: Sequence[float] | float | None,
    threshold: float = RENDER_THRESHOLD,
) -> bool:
    """Return ``True`` when any component changed by at least ``threshold``."""

    if last is None:
        return True
    new_vector = sample_vector(new)
    last_vector = sample_vector(last)
    if new_vector.shape != last_vector.shape:
        return True
    return bool(np.max(np.abs(new_vector - last_vector)) >= threshold)


def vu_segments(level: float, segments: int = 20) -> List[str]:
    """Colour each meter segment for a linear ``level`` in ``[0, 1]``."""

    if segments <= 0:
        raise ValueError("segments must be positive")
    lit = int(round(float(np.clip(level, 0.0, 1.0)) * segments))
    colours: List[str] = []
    for index in range(segments):
        if index >= lit:
            colours.append(SEGMENT_OFF)
            continue
        position = (index + 1) / segments
        if position <= 0.7:
            colours.append(SEGMENT_GREEN)
        elif position <= 0.9:
            colours.append(SEGMENT_YELLOW)
        else:
            colours.append(SEGMENT_RED)
    return colours


class RenderChangeFilter(Generic[A]):
    """Cache a presentation artifact until the sample moves past ``threshold``."""

    def __init__(
        self,
        render: Callable[[np.ndarray], A],
        *,
        threshold: float = RENDER_THRESHOLD,
    ) -> None:
        if threshold < 0.0:
            raise ValueError("threshold must be non-negative")
        self._render = render
        self._threshold = float(threshold)
        self._last_rendered: Optional[np.ndarray] = None
        self._artifact: Optional[A] = None
        self.render_count = 0

    @property
    def threshold(self) -> float:
        return self._threshold

    @property
    def last_rendered(self) -> Optional[np.ndarray]:
        return None if self._last_rendered is None else self._last_rendered.copy()

    def present(self, sample: Sequence[float] | float) -> A:
        """Return the artifact for ``sample``, recomputing only on a real change."""

        vector = sample_vector(sample)
        if should_render(vector, self._last_rendered, self._threshold):
            self._artifact = self._render(vector)
            self._last_rendered = vector
            self.render_count += 1
        return self._artifact

    def reset(self) -> None:
        self._last_rendered = None
        self._artifact = None


__all__ = [
    "RENDER_THRESHOLD",
    "SEGMENT_GREEN",
    "SEGMENT_YELLOW",
    "SEGMENT_RED",
    "SEGMENT_OFF",
    "RenderChangeFilter",
    "sample_vector",
    "should_render",
    "vu_segments",
]
