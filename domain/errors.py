from __future__ import annotations


class DuplicateExternalIdError(Exception):
    """
    Raised by a binding repository when a write would give an external ID
    a second owner.

    The store's uniqueness constraint is the authority here: the check runs
    at the point of write, so it also catches claims that raced past an
    earlier read.
    """

    def __init__(self, external_id: str) -> None:
        super().__init__(f"External ID {external_id} is already bound to another requester.")
        self.external_id = external_id
