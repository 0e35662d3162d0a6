import uuid


class HelpDeskError(Exception):
    """Base class for help desk failures"""


class NotFoundError(HelpDeskError, LookupError):
    """Unknown help request or knowledge entry id"""

    def __init__(self, kind: str, record_id: str):
        super().__init__(f"{kind} {record_id} not found")
        self.kind = kind
        self.record_id = record_id


class AlreadyResolvedError(HelpDeskError):
    """Transition attempted on a request that already left pending"""

    def __init__(self, request_id: str, status: str):
        super().__init__(f"Request {request_id} is not pending (status: {status})")
        self.request_id = request_id
        self.status = status


class StoreError(HelpDeskError):
    """Underlying persistence or network failure"""


class ValidationError(HelpDeskError, ValueError):
    """Missing or empty required input"""


def require_text(value, field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required")
    return str(value).strip()


def require_uuid(value, field: str) -> str:
    try:
        return str(uuid.UUID(str(value).strip()))
    except ValueError:
        raise ValidationError(f"{field} must be a UUID") from None
