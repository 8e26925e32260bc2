"""Exceptions shared by the dispatcher, the store and the HTTP layer."""


class DispatcherError(RuntimeError):
    pass


class ConfigurationError(DispatcherError):
    """Required configuration (push credentials) is missing."""


class OutboxStoreError(DispatcherError):
    """
    The outbox store failed to claim, complete or count jobs.

    Fatal for the current run: job states may be inconsistent, so the caller
    must not attempt partial bookkeeping.
    """
