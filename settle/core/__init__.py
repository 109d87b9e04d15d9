from settle.core.exceptions import (
    ConfigurationError,
    FetchFailedError,
    PollCancelledError,
    PollOutcome,
    ResourceNotFoundError,
    SettleError,
    TagOperationError,
    UnexpectedStateError,
    WaitError,
    WaitTimeoutError,
)

__all__ = [
    "ConfigurationError",
    "FetchFailedError",
    "PollCancelledError",
    "PollOutcome",
    "ResourceNotFoundError",
    "SettleError",
    "TagOperationError",
    "UnexpectedStateError",
    "WaitError",
    "WaitTimeoutError",
]
