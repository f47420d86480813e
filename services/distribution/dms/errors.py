"""
Error taxonomy for the distribution service.

Every error raised by the order workflow derives from DistributionError and
carries the HTTP status code the API layer responds with. Notification
failures are not exceptions: they are reported as
schemas.PartialNotificationFailure entries on a successful result.
"""
from typing import Optional


class DistributionError(Exception):
    """Base class for all domain errors."""
    status_code = 500
    # set when the failure follows an already-committed order
    order_number: Optional[str] = None

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DistributionError):
    """Malformed input shape or values."""
    status_code = 400


class NotFoundError(DistributionError):
    """A referenced entity does not exist."""
    status_code = 404

    def __init__(self, entity: str, identifier):
        super().__init__(f"{entity} with id {identifier} not found")
        self.entity = entity
        self.identifier = identifier


class ConflictError(DistributionError):
    """A uniqueness constraint was violated (e.g. order number collision)."""
    status_code = 409


class TransientStoreError(DistributionError):
    """
    The Record Store or a collaborator timed out or was unavailable.

    Attributes:
        stage: Workflow stage that failed (e.g. "insert_order", "decrement_inventory")
        order_number: Number of the order already committed before the failure, if any
    """
    status_code = 503

    def __init__(self, message: str, stage: Optional[str] = None, order_number: Optional[str] = None):
        super().__init__(message)
        self.stage = stage
        self.order_number = order_number
