"""
Tests for representative frame sampling.
"""

import pytest

from core.frame_sampler import sample_frame_indices


class TestSampleFrameIndices:
    @pytest.mark.parametrize("count", [1, 2, 5, 6])
    def test_short_sequences_kept_whole(self, count):
        assert sample_frame_indices(count, 6) == list(range(count))

    def test_forty_frames_to_six(self):
        indices = sample_frame_indices(40, 6)
        assert len(indices) == 6
        assert indices[0] == 0 and indices[-1] == 39
        assert all(a < b for a, b in zip(indices, indices[1:]))
        assert indices == [0, 8, 16, 23, 31, 39]

    @pytest.mark.parametrize("count", [7, 8, 13, 100, 1000])
    @pytest.mark.parametrize("max_frames", [2, 3, 6])
    def test_endpoints_and_order(self, count, max_frames):
        indices = sample_frame_indices(count, max_frames)
        assert len(indices) == max_frames
        assert indices[0] == 0 and indices[-1] == count - 1
        assert indices == sorted(set(indices))

    def test_single_slot_keeps_first_frame(self):
        assert sample_frame_indices(10, 1) == [0]

    @pytest.mark.parametrize("count", [0, -3])
    def test_empty(self, count):
        assert sample_frame_indices(count) == []

    def test_default_cap_is_six(self):
        assert len(sample_frame_indices(50)) == 6

    def test_invalid_max_frames(self):
        with pytest.raises(ValueError):
            sample_frame_indices(10, 0)
