"""
Reconciliation Exceptions

Errors raised by the reconciliation core. Store/infrastructure failures live
in store.base and are not part of this hierarchy.
"""


class ReconciliationError(Exception):
    """Base exception for reconciliation errors"""
    pass


class SeatDataError(ReconciliationError, ValueError):
    """
    Raised when trip or vehicle data cannot be reconciled as given:
    non-numeric seat numbers, a missing seat collection, duplicate seats.
    """

    def __init__(self, message: str, document_id: str = None):
        super().__init__(message)
        self.document_id = document_id
