"""Error taxonomy shared by the judge client, evaluation engine, session and store."""


class ArenaError(Exception):
    """Base class for all contest arena errors."""


class TransportError(ArenaError):
    """The judge could not be reached or answered with a non-success status."""


class EvaluationTimeoutError(ArenaError):
    """The judge never reported a terminal verdict within the polling budget."""


class PersistenceError(ArenaError):
    """The result/progress store is unavailable or rejected a write."""


class ValidationError(ArenaError):
    """A submission was rejected before dispatch (empty code, missing option...)."""


class SessionClosedError(ArenaError):
    """The contest session has been finalized and accepts no more work."""


class SessionStateError(ArenaError):
    """A lifecycle operation was invoked in a state that does not allow it."""
