class LedgerError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(LedgerError):
    status_code = 400


class ConflictError(LedgerError):
    status_code = 400


class NotFoundError(LedgerError):
    status_code = 404


class StoreError(LedgerError):
    status_code = 500
