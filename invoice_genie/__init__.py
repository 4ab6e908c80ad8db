"""Local-first invoicing: parse pasted customer sheets, keep orders in SQLite."""

from invoice_genie.errors import EmptyInputError, MappingError, NoFieldsMappedError
from invoice_genie.parser import CustomerDataParser, parse_customer_data

__version__ = "0.1.0"

__all__ = [
    "CustomerDataParser",
    "EmptyInputError",
    "MappingError",
    "NoFieldsMappedError",
    "parse_customer_data",
    "__version__",
]
