"""
Result URL extraction for finished Veo operations.

The generation API is not stable about where the final media URI lives in a
finished operation's response, so extraction walks an ordered list of known
shapes and returns the first match. Both the synchronous generator and the
reconciliation sweep go through extract_video_uri().
"""

from typing import Any, Callable, List, Optional


def _first(items: Any) -> Any:
    if isinstance(items, list) and items:
        return items[0]
    return None


def _get(container: Any, key: str) -> Any:
    if isinstance(container, dict):
        return container.get(key)
    return None


def _from_generated_samples(response: dict) -> Optional[str]:
    """generateVideoResponse.generatedSamples[0].video.uri"""
    sample = _first(_get(_get(response, "generateVideoResponse"), "generatedSamples"))
    return _get(_get(sample, "video"), "uri")


def _from_predictions(response: dict) -> Optional[str]:
    """predictions[0].videoUri"""
    return _get(_first(_get(response, "predictions")), "videoUri")


def _from_video_uri(response: dict) -> Optional[str]:
    """videoUri"""
    return _get(response, "videoUri")


def _from_uri(response: dict) -> Optional[str]:
    """uri"""
    return _get(response, "uri")


# Priority order matters: the first extractor returning a URL wins
RESULT_URL_EXTRACTORS: List[Callable[[dict], Optional[str]]] = [
    _from_generated_samples,
    _from_predictions,
    _from_video_uri,
    _from_uri,
]


def extract_video_uri(response: Optional[dict]) -> Optional[str]:
    """
    Extract the generated video URI from a finished operation's response.

    Args:
        response: The operation's result payload (may be None)

    Returns:
        The first non-empty URI found, or None when no known shape matched.
        Never returns a placeholder.
    """
    if not isinstance(response, dict):
        return None

    for extractor in RESULT_URL_EXTRACTORS:
        uri = extractor(response)
        if isinstance(uri, str) and uri.strip():
            return uri.strip()

    return None
