"""
Video generation workflow package.

This package contains the error model shared by the generator, the poller,
the sweep and the queue worker.
"""

__version__ = "0.1.0"

from .error_handler import PipelineError, ErrorCode, should_retry

__all__ = [
    "PipelineError",
    "ErrorCode",
    "should_retry",
]
