"""Order defaults, totals, and customer contact links."""

from __future__ import annotations

import re
from datetime import date, timedelta
from typing import Any, Mapping
from urllib.parse import quote

ORDER_STATUSES = ("Pending", "Paid", "Overdue", "Cancelled")
DEFAULT_DUE_DAYS = 7
DEFAULT_TAX_RATE = 18
DEFAULT_CURRENCY = "INR"
DEFAULT_TAX_NAME = "GST"
DEFAULT_TEMPLATE = "modern"
DEFAULT_PAYMENT_METHOD = "Prepaid"
INDIA_COUNTRY_CODE = "91"


def create_default_order_info(today: date | None = None) -> dict[str, Any]:
    today = today or date.today()
    return {
        "orderNumber": "",
        "invoiceNumber": "",
        "orderDate": today.isoformat(),
        "status": "Pending",
        "dueDate": (today + timedelta(days=DEFAULT_DUE_DAYS)).isoformat(),
        "productName": "",
        "quantity": 1,
        "unitPrice": 0,
        "shippingCharges": 0,
        "taxRate": DEFAULT_TAX_RATE,
        "taxAmount": 0,
        "totalAmount": 0,
        "currency": DEFAULT_CURRENCY,
        "paymentMethod": DEFAULT_PAYMENT_METHOD,
        "trackingNumber": "",
        "companyTaxName": DEFAULT_TAX_NAME,
        "template": DEFAULT_TEMPLATE,
    }


def to_number(value: Any) -> float:
    """Form fields arrive as strings; blanks and junk count as 0."""
    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        return 0.0


def compute_order_totals(order: Mapping[str, Any]) -> dict[str, float]:
    subtotal = to_number(order.get("quantity")) * to_number(order.get("unitPrice"))
    tax_amount = round(subtotal * to_number(order.get("taxRate")) / 100, 2)
    shipping = to_number(order.get("shippingCharges"))
    return {
        "subtotal": round(subtotal, 2),
        "taxAmount": tax_amount,
        "totalAmount": round(subtotal + tax_amount + shipping, 2),
    }


def build_order(customer: Mapping[str, str], details: Mapping[str, Any] | None = None) -> dict[str, Any]:
    """Merge a parsed customer record with order details and fill in totals."""
    order = create_default_order_info()
    order.update(details or {})
    order.update(customer)
    if order["status"] not in ORDER_STATUSES:
        raise ValueError(f"Unknown order status '{order['status']}'. Expected one of {', '.join(ORDER_STATUSES)}")
    totals = compute_order_totals(order)
    order["taxAmount"] = totals["taxAmount"]
    order["totalAmount"] = totals["totalAmount"]
    return order


def generate_whatsapp_link(phone: str, message: str) -> str:
    digits = re.sub(r"\D", "", phone or "")
    if len(digits) == 10:
        digits = INDIA_COUNTRY_CODE + digits
    return f"https://wa.me/{digits}?text={quote(message, safe='')}"


def generate_gmail_link(email: str, subject: str, body: str) -> str:
    return (
        "https://mail.google.com/mail/?view=cm&fs=1"
        f"&to={email}&su={quote(subject, safe='')}&body={quote(body, safe='')}"
    )


def generate_email_link(email: str, subject: str, body: str) -> str:
    return f"mailto:{email}?subject={quote(subject, safe='')}&body={quote(body, safe='')}"
