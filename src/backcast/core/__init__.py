from .poller import Fetcher, Poller, PollOutcome
from .scheduler import RefreshScheduler
from .service import BackcastService, ErrorResponse, error_response

__all__ = [
    "BackcastService",
    "ErrorResponse",
    "Fetcher",
    "PollOutcome",
    "Poller",
    "RefreshScheduler",
    "error_response",
]
