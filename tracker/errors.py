"""Failure types surfaced by the persistence boundary.

Validation and guard violations are returned as data; these exceptions cover
the conditions a driver or admin cannot correct from a form:

- StorageError: the session store could not load or save a record
- AuditWriteError: the session was saved but its audit entries were not
"""


class StorageError(RuntimeError):
    """Raised when the session store fails a read or a write."""


class AuditWriteError(RuntimeError):
    """Raised when audit entries could not be appended after a successful save.

    Attributes:
        session: The session as persisted (the save is not rolled back)
        entries: Audit entries that were not recorded
    """

    def __init__(self, session, entries, cause: Exception):
        self.session = session
        self.entries = entries
        self.cause = cause
        super().__init__(
            f"Session {session.id} saved but {len(entries)} audit entries were lost: {cause}"
        )
