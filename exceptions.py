"""Custom exceptions for the natal chart engine."""


class NatalChartError(Exception):
    """Base exception for all chart engine errors."""
    pass


class UnknownTimezoneError(NatalChartError):
    """Raised when a timezone identifier is not recognised."""

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"Unknown timezone: {identifier}")


class DateCompositionError(NatalChartError):
    """Raised when birth date and time cannot be combined into an instant."""
    pass


class InvalidCoordinatesError(NatalChartError):
    """Raised when coordinates are missing or out of range."""
    pass


class ChartMappingError(NatalChartError):
    """Raised when provider data is structurally invalid."""
    pass


class MalformedHouseDataError(ChartMappingError):
    """Raised when house data is not exactly the twelve houses 1..12."""
    pass


class UnmappedNameError(ChartMappingError):
    """Raised under a strict mapping policy for unrecognised provider names."""

    def __init__(self, kind: str, name: str):
        self.kind = kind
        self.name = name
        super().__init__(f"Unrecognised {kind} name: {name!r}")


class ChartCalculationError(NatalChartError):
    """Raised when the position provider fails."""
    pass


class ChartCacheError(NatalChartError):
    """Raised when a cache entry cannot be written or decoded."""
    pass
