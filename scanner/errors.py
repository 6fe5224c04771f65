# scanner/errors.py
"""
Exception hierarchy for scanner setup, invocation and report parsing.

Non-zero qscanner exit codes are not exceptions; they surface as ScanOutcome data.
"""


class ScannerError(Exception):
    """Base exception for scanner errors."""


class ScannerConfigError(ScannerError, ValueError):
    """Invalid configuration, options, or missing credential."""


class PlatformError(ScannerError):
    """The runtime OS/architecture cannot run the scanner binary."""


class NetworkError(ScannerError):
    """Binary download failed or violated the transport policy."""


class IntegrityError(ScannerError):
    """Downloaded artifact did not match the pinned digest or could not be extracted."""


class ProcessStartError(ScannerError):
    """The scanner process could not be started at all."""


class ReportNotFoundError(ScannerError, FileNotFoundError):
    """The findings report file does not exist."""


class ReportParseError(ScannerError, ValueError):
    """The findings report is not well-formed."""
