"""Error types shared by the exchange adapters, the collector and the API layer."""


class ConfigurationError(Exception):
    """An account is configured in a way that prevents talking to its exchange."""


class MissingCredentials(ConfigurationError):
    def __init__(self, account_name: str, missing: list[str] | None = None):
        self.account_name = account_name
        self.missing = missing or []
        detail = f" ({', '.join(self.missing)})" if self.missing else ""
        super().__init__(f"Missing credentials{detail}")


class ExchangeError(Exception):
    """An exchange call failed: transport error, non-2xx status or an error code in the body."""

    def __init__(self, exchange: str, message: str, code: str | None = None, status: int | None = None):
        self.exchange = exchange
        self.message = message
        self.code = code
        self.status = status
        super().__init__(f"{exchange}: {message}" + (f" (code {code})" if code else ""))


class UnsupportedOperation(ExchangeError):
    def __init__(self, exchange: str, operation: str):
        super().__init__(exchange, f"{operation} is not supported")
        self.operation = operation


class AccountNotFound(Exception):
    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account {account_id} not found")
