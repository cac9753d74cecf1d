"""Extraction domain - direct audio URLs for YouTube videos.

This domain handles:
- Backend adapters for Cobalt and Piped instances
- The sequential fallback chain with a short-lived result cache
- A client for running the chain behind the web service
"""

from .backends import (
    CobaltBackend,
    ExtractionBackend,
    PipedBackend,
    build_default_backends,
    select_best_stream,
    select_picker_item,
)
from .chain import ExtractionChain
from .exceptions import BackendUnavailableError, ExtractionError, MalformedResponseError
from .models import AudioResult, ExtractionOutcome, Ok, Skip
from .remote import RemoteExtractor

__all__ = [
    "AudioResult",
    "ExtractionOutcome",
    "Ok",
    "Skip",
    "ExtractionBackend",
    "CobaltBackend",
    "PipedBackend",
    "build_default_backends",
    "select_best_stream",
    "select_picker_item",
    "ExtractionChain",
    "RemoteExtractor",
    "ExtractionError",
    "BackendUnavailableError",
    "MalformedResponseError",
]
