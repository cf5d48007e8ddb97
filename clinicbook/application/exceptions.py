class ExternalServiceUnavailable(RuntimeError):
    """Raised when a collaborator (intent extractor, messaging channel) cannot serve the request."""
    pass


class LLMUpstreamError(ExternalServiceUnavailable):
    """Raised when LLM provider fails (timeouts, network errors, service unavailable)."""
    pass


class LLMContractError(ExternalServiceUnavailable):
    """Raised when LLM adapter violates contract (bad format or missing data)."""
    pass


class WriteConflictError(RuntimeError):
    """Raised by a calendar store when a concurrent writer won the race for the same slot."""
    pass


class DuplicateRecordError(RuntimeError):
    """Raised by a store when a unique business key already exists."""
    pass
