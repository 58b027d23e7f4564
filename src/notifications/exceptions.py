"""Error taxonomy for the push relay.

Every error here is reported to the caller as ``400 {success: false, error}``,
except ``ConfigurationError`` (converted into a simulated delivery by the
service) and ``DeliveryError`` (recorded per destination, never raised out of
a batch).
"""


class PushRelayError(Exception):
    pass


class AuthenticationError(PushRelayError):
    pass


class ConfigurationError(PushRelayError):
    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Firebase credentials not configured: missing {', '.join(missing)}")


class InvalidRequestError(PushRelayError):
    pass


class NoDestinationError(PushRelayError):
    pass


class TokenLookupError(PushRelayError):
    pass


class TokenExchangeError(PushRelayError):
    def __init__(self, message: str, status: int | None = None, body: str = "") -> None:
        self.status = status
        self.body = body
        super().__init__(message)


class DeliveryError(PushRelayError):
    def __init__(self, message: str, status: int | None = None, body: str = "") -> None:
        self.status = status
        self.body = body
        super().__init__(message)
