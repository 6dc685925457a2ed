from __future__ import annotations


class RosterScanError(Exception):
    """Base exception for the roster scan pipeline."""


class ImageSourceError(RosterScanError):
    """Raised when image bytes cannot be fetched or decoded."""


class OcrDependencyError(RosterScanError):
    """Raised when a required imaging/OCR dependency is missing."""


class DetectionProviderError(RosterScanError):
    """Raised when the text detection provider fails. Fatal for the run."""


class NoTextDetectedError(RosterScanError):
    """Raised in production mode when the provider found no text at all."""


class RosterStoreError(RosterScanError):
    """Raised when the roster store rejects a read or write."""


class CorpusDataError(RosterScanError):
    """Raised when champion reference data cannot be read or parsed."""
