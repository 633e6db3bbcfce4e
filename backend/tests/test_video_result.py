"""
Tests for result URL extraction from finished operations.
"""

import pytest

from services.video_result import RESULT_URL_EXTRACTORS, extract_video_uri


class TestExtractVideoUri:
    """Each known response shape, priority order and the no-match case."""

    @pytest.mark.parametrize("response", [
        {"generateVideoResponse": {"generatedSamples": [{"video": {"uri": "https://x/a.mp4"}}]}},
        {"predictions": [{"videoUri": "https://x/a.mp4"}]},
        {"videoUri": "https://x/a.mp4"},
        {"uri": "https://x/a.mp4"},
    ])
    def test_known_shapes(self, response):
        assert extract_video_uri(response) == "https://x/a.mp4"

    def test_nested_samples_win_over_flat_uri(self):
        response = {
            "uri": "https://x/flat.mp4",
            "videoUri": "https://x/video-uri.mp4",
            "generateVideoResponse": {"generatedSamples": [{"video": {"uri": "https://x/nested.mp4"}}]},
        }
        assert extract_video_uri(response) == "https://x/nested.mp4"

    def test_predictions_win_over_video_uri(self):
        response = {"videoUri": "https://x/b.mp4", "predictions": [{"videoUri": "https://x/a.mp4"}]}
        assert extract_video_uri(response) == "https://x/a.mp4"

    def test_empty_candidates_fall_through(self):
        response = {
            "generateVideoResponse": {"generatedSamples": [{"video": {"uri": "  "}}]},
            "predictions": [],
            "uri": "https://x/a.mp4",
        }
        assert extract_video_uri(response) == "https://x/a.mp4"

    @pytest.mark.parametrize("response", [
        None,
        {},
        {"generateVideoResponse": {"generatedSamples": []}},
        {"generateVideoResponse": {"generatedSamples": [{"video": {}}]}},
        {"predictions": [{"gcsUri": "gs://bucket/a.mp4"}]},
        {"uri": 42},
        "https://x/a.mp4",
    ])
    def test_no_match_returns_none(self, response):
        """No placeholder URL is ever made up."""
        assert extract_video_uri(response) is None

    def test_extractor_order(self):
        assert [f.__name__ for f in RESULT_URL_EXTRACTORS] == [
            "_from_generated_samples",
            "_from_predictions",
            "_from_video_uri",
            "_from_uri",
        ]
