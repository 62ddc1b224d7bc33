"""Error types raised by the conversation store, retrieval engine and memory write path."""


class PersonalAgentError(Exception):
    """Base class for all domain errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class MalformedKey(PersonalAgentError):
    """Thread key has fewer than three dash-delimited components."""

    status_code = 400


class ThreadNotFound(PersonalAgentError):
    status_code = 404


class MemoryNotFound(PersonalAgentError):
    status_code = 404


class StoreNotFound(PersonalAgentError):
    status_code = 404


class NoFieldsToUpdate(PersonalAgentError):
    """Update call supplied neither content nor tags."""

    status_code = 422


class StorageUnavailable(PersonalAgentError):
    """I/O failure against the relational backend. Never retried internally."""

    status_code = 503
