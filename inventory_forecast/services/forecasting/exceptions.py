"""Errors raised by the forecast data sources and pipeline."""


class ForecastError(Exception):
    """Base class for forecast pipeline errors."""
    pass


class SourceUnavailableError(ForecastError):
    """A required source (catalog or sales ledger) could not be read."""

    def __init__(self, source: str, message: str):
        self.source = source
        self.message = message
        super().__init__(f"{source} unavailable: {message}")


class OptionalSourceDegradedError(ForecastError):
    """The reseller directory could not be read. Never fatal for a cycle."""

    def __init__(self, source: str, message: str):
        self.source = source
        self.message = message
        super().__init__(f"{source} degraded: {message}")
