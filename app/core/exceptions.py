from fastapi import HTTPException, status


class NotFoundError(HTTPException):
    """Custom exception for not found errors"""
    def __init__(self, resource: str = "Resource"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=f"{resource} not found")


class ValidationError(HTTPException):
    """Custom exception for validation errors"""
    def __init__(self, detail: str = "Validation failed"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


# Webhook intake errors. Raised before the ledger is touched.

class SignatureInvalid(HTTPException):
    """Webhook signature missing or does not match the shared secret"""
    def __init__(self, detail: str = "Invalid Stripe signature"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class SignatureStale(HTTPException):
    """Webhook signature timestamp is outside the tolerance window"""
    def __init__(self, detail: str = "Stripe signature timestamp outside tolerance"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class MalformedEvent(HTTPException):
    """Signed payload could not be decoded into a known event shape"""
    def __init__(self, detail: str = "Malformed webhook payload"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class EventInProgress(HTTPException):
    """Another delivery of the same event currently holds the ledger claim"""
    def __init__(self, event_id: str):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Event {event_id} is being processed by another worker",
        )


class ReconciliationFailure(HTTPException):
    """Unexpected error inside a reconciler; the event stays unprocessed"""
    def __init__(self, event_id: str, reason: str):
        self.event_id = event_id
        self.reason = reason
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to process event {event_id}: {reason}",
        )


class UnresolvedReference(Exception):
    """A referenced parent entity is not known locally yet.

    Non-fatal: reconcilers raise it, the event router logs it and reports the
    event as skipped. A later sync or a correctly ordered event heals the gap.
    """

    def __init__(self, entity: str, external_id: str | None):
        self.entity = entity
        self.external_id = external_id
        super().__init__(f"{entity} {external_id!r} not found locally")


# Local action errors. Terminal and user facing.

class InvalidOrInactivePrice(HTTPException):
    def __init__(self, price_id: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid or inactive price: {price_id}",
        )


class CustomerNotLinked(HTTPException):
    def __init__(self, detail: str = "User or Stripe customer not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class NotEligibleForReactivation(HTTPException):
    def __init__(self, detail: str = "Subscription is not scheduled for cancellation"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class ExternalProcessorError(HTTPException):
    """Stripe call failed. ``retryable`` tells the caller whether to try again."""
    def __init__(self, detail: str, *, retryable: bool):
        self.retryable = retryable
        super().__init__(
            status_code=(
                status.HTTP_503_SERVICE_UNAVAILABLE if retryable else status.HTTP_502_BAD_GATEWAY
            ),
            detail={"error": "Payment processor error", "message": detail, "retryable": retryable},
        )
