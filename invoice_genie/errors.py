from __future__ import annotations


class InvoiceGenieError(Exception):
    pass


class EmptyInputError(InvoiceGenieError, ValueError):
    def __init__(self, message: str = "Please paste some data first") -> None:
        super().__init__(message)


class MappingError(InvoiceGenieError, ValueError):
    pass


class NoFieldsMappedError(MappingError):
    def __init__(self, message: str = "Please map at least one field") -> None:
        super().__init__(message)


class BackupFormatError(InvoiceGenieError, ValueError):
    pass


class StoreError(InvoiceGenieError):
    pass
