# ppcup/errors.py


class PPCupError(Exception):
    """Base class for every error raised by the scoreboard."""


class ExternalFetchFailure(PPCupError):
    """The rating source failed for one user (unreachable, 4xx/5xx, bad payload)."""

    def __init__(self, user_id, reason: str):
        self.user_id = user_id
        self.reason = reason
        super().__init__(f"fetch failed for user {user_id}: {reason}")


class PersistenceFailure(PPCupError):
    """A store read or write failed. Already-committed writes stay committed."""


class DataIntegrityAmbiguity(PPCupError):
    """A history entry cannot be tied to any player identity."""


class AlreadyRegistered(PPCupError):
    def __init__(self, user_id):
        self.user_id = user_id
        super().__init__(f"user {user_id} is already registered")


class SnapshotConflict(PersistenceFailure):
    """A history snapshot with this key already holds a different cup."""
