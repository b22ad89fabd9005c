class TraceAuditError(Exception):
    """Base class for domain failures returned to API callers."""
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DuplicateLot(TraceAuditError):
    status_code = 400

    def __init__(self, lot_id: str):
        super().__init__(f"lot_id {lot_id} already exists")
        self.lot_id = lot_id


class LotNotFound(TraceAuditError):
    status_code = 404

    def __init__(self, lot_id: str):
        super().__init__(f"lot {lot_id} not found")
        self.lot_id = lot_id


class PermissionDenied(TraceAuditError):
    status_code = 403

    def __init__(self, actor: str, action: str):
        super().__init__(f"{actor or 'anonymous'} is not allowed to {action}")
        self.actor = actor


class EmptyBatchError(TraceAuditError):
    status_code = 422

    def __init__(self, message: str = "inspection batch contains no units"):
        super().__init__(message)


class InvalidThresholdUpdate(TraceAuditError):
    status_code = 422
