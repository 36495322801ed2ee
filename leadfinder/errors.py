"""Error taxonomy shared by the resolvers, extractors and the lookup service."""

from __future__ import annotations


class LeadFinderError(Exception):
    """Base class for all LeadFinder errors."""

    kind = "error"
    retryable = False


class StructuralError(LeadFinderError):
    """Input cannot be structurally parsed (e.g. no house number)."""

    kind = "structural"


class TransportError(LeadFinderError):
    """A single query or fetch failed at the network layer."""

    kind = "transport"
    retryable = True

    def __init__(self, message: str, *, url: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class FetchTimeoutError(TransportError):
    """A fetch exceeded its deadline. Usually means the service is cold-starting."""

    kind = "timeout"


class RemoteQueryError(LeadFinderError):
    """The remote service answered, but rejected the query (bad field, bad SQL)."""

    kind = "remote_query"


class ConfigurationError(LeadFinderError):
    """A source descriptor lacks what the requested operation needs."""

    kind = "configuration"


class ExhaustedError(LeadFinderError):
    """Every strategy in a cascade failed at the transport layer."""

    kind = "exhausted"

    def __init__(self, message: str, *, retryable: bool = True, timed_out: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.timed_out = timed_out


class InvalidRequestError(LeadFinderError):
    """A lookup request is missing the target fields its mode needs."""

    kind = "invalid_request"
