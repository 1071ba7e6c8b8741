"""
Exception hierarchy for LinkGraph.

All errors raised by the graph core inherit from LinkGraphError so callers
can catch the whole family at once. NotFoundError and ValidationError are
domain errors that callers are expected to surface; the rest describe
infrastructure failures.
"""


class LinkGraphError(Exception):
    """
    Base exception for all LinkGraph errors.
    """

    def __init__(self, message: str, context: dict | None = None):
        """
        Initialize LinkGraph error.
        Args:
            message: Error message
            context: Optional context dictionary with additional error details
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}


class StoreError(LinkGraphError):
    """
    Base exception for persistence operations.
    """

    pass


class GraphStoreError(StoreError):
    """
    Graph store operation errors.
    Raised when an entity, concept, relationship or cluster write fails.
    """

    pass


class JobQueueError(StoreError):
    """
    Job queue operation errors.
    Raised when enqueueing, claiming or settling a job fails.
    """

    pass


class CacheError(LinkGraphError):
    """
    Cache backend errors.
    Raised when a cache write or invalidation fails.
    """

    pass


class ValidationError(LinkGraphError):
    """
    Validation errors.
    Raised when input is invalid (bad weight, cyclic hierarchy, self-merge, ...).
    """

    pass


class NotFoundError(LinkGraphError):
    """
    Resource not found errors.
    Raised when a bookmark, entity, concept or cluster doesn't exist for the caller.
    """

    pass


class ConfigurationError(LinkGraphError):
    """
    Configuration errors.
    Raised when configuration is invalid or missing required values.
    """

    pass


class LLMError(LinkGraphError):
    """
    LLM operation errors.
    Raised when LLM calls fail (API errors, timeouts, empty output).
    """

    pass


class LeaseLostError(JobQueueError):
    """
    Raised when a worker tries to renew or settle a job whose lease it no longer holds.
    """

    pass
