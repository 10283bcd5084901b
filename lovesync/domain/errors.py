class TransportFailure(Exception):
    """Network-level failure (connection refused, timeout) talking to the scrobble service."""


class OperationCancelled(Exception):
    """A cooperative cancellation signal was observed before starting a call."""
