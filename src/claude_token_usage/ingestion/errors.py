"""Custom exceptions for Claude Code log ingestion failures."""


class IngestionError(Exception):
    """Base exception for ingestion errors."""


class DataDirectoryError(IngestionError):
    """Raised when a configured data directory exists but cannot be scanned."""


class SourceReadError(IngestionError):
    """Raised when a JSONL source file cannot be stat'ed, opened, or read."""


class LiveRefreshError(IngestionError):
    """Raised when a live refresh cycle is aborted by an I/O failure."""
