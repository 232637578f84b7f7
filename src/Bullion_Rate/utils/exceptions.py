"""Custom exception hierarchy for the Bullion Rate price engine.

All domain-specific exceptions inherit from PriceEngineError, which carries
contextual information about which instrument and which source failed.
"""


class PriceEngineError(Exception):
    """Base exception for all price engine failures.

    Attributes:
        instrument: The instrument involved (e.g., "silver", "USD/INR").
        source: The component or provider that failed (e.g., "yahoo", "formula").
        http_status: The HTTP status code, if the failure was HTTP-related.
    """

    def __init__(
        self,
        message: str,
        *,
        instrument: str,
        source: str,
        http_status: int | None = None,
    ) -> None:
        self.instrument = instrument
        self.source = source
        self.http_status = http_status
        super().__init__(message)


class ProviderError(PriceEngineError):
    """Raised when a single upstream provider fails or returns implausible data.

    Internal to the rate fetcher: it is collected while walking the provider
    chain and never escapes to callers on its own.
    """


class UpstreamUnavailableError(PriceEngineError):
    """Raised when no provider returned plausible data for an instrument."""


class InvalidInputError(PriceEngineError):
    """Raised when the formula receives missing, non-positive, or out-of-band input.

    Also raised by the rate fetcher for a currency pair it has no plausibility
    band for, before any provider is called.
    """


class StorageFailureError(PriceEngineError):
    """Raised when the durable store cannot be read or written."""


class SchedulingFailureError(PriceEngineError):
    """Raised when a client poll callback fails."""
