from __future__ import annotations

from typing import List

from core.config import MAX_ANIMATION_FRAMES


def sample_frame_indices(frame_count: int, max_frames: int = MAX_ANIMATION_FRAMES) -> List[int]:
    """
    Pick at most ``max_frames`` representative frame indices.

    Sequences that already fit are returned whole. Longer ones always keep the
    first and last frame and spread the remaining slots evenly over the frames
    in between, so the payload stays small without losing temporal coverage.

    Args:
        frame_count: Total frames in the source sequence
        max_frames: Upper bound on returned indices (at least 1)

    Returns:
        Strictly ascending frame indices
    """
    if frame_count <= 0:
        return []
    if max_frames < 1:
        raise ValueError("max_frames must be at least 1")
    if frame_count <= max_frames:
        return list(range(frame_count))
    if max_frames == 1:
        return [0]

    last = frame_count - 1
    inner = max_frames - 2
    picks = {0, last}
    for k in range(1, inner + 1):
        picks.add(int(round(k * last / (inner + 1))))

    return sorted(picks)[:max_frames]
