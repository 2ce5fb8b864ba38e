# marketplace/errors.py


class MarketplaceError(Exception):
    """
    Base for errors raised by the services.

    Carries the HTTP status the API layer answers with; the message is
    shown to the client as {"message": ...}.
    """
    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class BadRequest(MarketplaceError):
    status_code = 400


class Unauthorized(MarketplaceError):
    status_code = 401


class Forbidden(MarketplaceError):
    status_code = 403


class NotFound(MarketplaceError):
    status_code = 404
