
class LedgerError(Exception):
    """Base exception for all ledger failures."""

    code = "ledger_error"
    status_code = 400
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code, "retryable": self.retryable}


class InvalidRequest(LedgerError):
    """Rejected before any storage access (bad quantity, same locations, ...)."""

    code = "invalid_request"
    status_code = 422

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class NotFound(LedgerError):
    code = "not_found"
    status_code = 404

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity.capitalize()} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id

    def to_dict(self) -> dict:
        return {**super().to_dict(), "entity": self.entity}


class InsufficientStock(LedgerError):
    """Business-rule rejection: the movement would take stock below zero."""

    code = "insufficient_stock"
    status_code = 400

    def __init__(self, available: int, requested: int | None = None):
        super().__init__(f"Insufficient stock. Available: {available}")
        self.available = available
        self.requested = requested

    def to_dict(self) -> dict:
        payload = {**super().to_dict(), "available": self.available}
        if self.requested is not None:
            payload["requested"] = self.requested
        return payload


class ConcurrentUpdateConflict(LedgerError):
    """The stock record kept changing under us until retries ran out."""

    code = "concurrent_update"
    status_code = 409
    retryable = True

    def __init__(self, product_id: str, location_id: str, attempts: int):
        super().__init__("Please retry, the item was updated concurrently")
        self.product_id = product_id
        self.location_id = location_id
        self.attempts = attempts
