"""
Domain errors for the invoice core.
Each carries the HTTP status the API layer answers with.
"""


class InvoiceAppError(Exception):
    status_code = 500

    def __init__(self, message: str = None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class NotFound(InvoiceAppError):
    """Referenced entity is missing or owned by another user"""
    status_code = 404


class QuotaExceeded(InvoiceAppError):
    """Plan invoice limit reached for the current quota window"""
    status_code = 403

    def __init__(self, plan_name: str, limit: int):
        super().__init__(
            f"Invoice limit reached for the {plan_name} plan ({limit}). Upgrade your plan to create more invoices."
        )
        self.plan_name = plan_name
        self.limit = limit


class InvalidSignature(InvoiceAppError):
    """Webhook signature does not match the raw body"""
    status_code = 400


class InvalidPayload(InvoiceAppError):
    status_code = 400


class RenderFailed(InvoiceAppError):
    """PDF could not be rendered or written to content storage"""
    status_code = 502


class DeliveryFailed(InvoiceAppError):
    """Invoice email could not be delivered"""
    status_code = 502


class GatewayError(InvoiceAppError):
    status_code = 502
