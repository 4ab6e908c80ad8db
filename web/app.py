#!/usr/bin/env python3
from __future__ import annotations

import json

import pandas as pd
import streamlit as st

from invoice_genie.config import default_db_path, load_app_config
from invoice_genie.errors import EmptyInputError, MappingError
from invoice_genie.loader import decode_text, fetch_remote_text
from invoice_genie.mapping import SKIP, apply_column_mapping, normalize_mapping, preview_label, sample_columns
from invoice_genie.orders import build_order, generate_email_link, generate_whatsapp_link
from invoice_genie.parser import CustomerDataParser
from invoice_genie.store import LocalStore

SAMPLE_CUSTOMER_DATA = (
    "Timestamp\tFirst Name\tLast Name\tEmail ID\tPhone Number\tBuilding/House/Apartment Name\t"
    "Street Address\tLocality\tCity\tState\tPincode\tAny Delivery Instructions/Notes\n"
    "12/26/2024 10:30:00\tRahul\tSharma\trahul.sharma@email.com\t9876543210\t"
    "Flat 402, Sunrise Apartments\tMG Road, Sector 15\tAndheri West\tMumbai\tMaharashtra\t400053\t"
    "Please call before delivery"
)
EXPECTED_COLUMNS = (
    "Timestamp | First Name | Last Name | Email ID | Phone Number | Building/House/Apartment Name | "
    "Street Address | Locality | City | State | Pincode | Delivery Instructions"
)


@st.cache_resource(show_spinner=False)
def load_store() -> LocalStore:
    return LocalStore(default_db_path())


APP_CONFIG = load_app_config()
PARSER = CustomerDataParser(APP_CONFIG.parser_config)


def ensure_state() -> None:
    st.session_state.setdefault("pasted_data", "")
    st.session_state.setdefault("mapping_open", False)
    st.session_state.setdefault("raw_columns", [])


def load_sample() -> None:
    st.session_state["pasted_data"] = SAMPLE_CUSTOMER_DATA


def open_mapping_tool() -> None:
    try:
        st.session_state["raw_columns"] = sample_columns(st.session_state["pasted_data"])
    except EmptyInputError as exc:
        st.session_state["mapping_error"] = str(exc)
        return
    for spec in PARSER.config.fields:
        st.session_state[f"map_{spec.key}"] = SKIP
    st.session_state["mapping_open"] = True


def apply_mapping() -> None:
    columns = st.session_state["raw_columns"]
    choices = {spec.key: st.session_state.get(f"map_{spec.key}", SKIP) for spec in PARSER.config.fields}
    try:
        mapping = normalize_mapping(choices, PARSER.config, column_count=len(columns))
        rebuilt = apply_column_mapping(st.session_state["pasted_data"], mapping, PARSER.config)
    except (EmptyInputError, MappingError) as exc:
        st.session_state["mapping_error"] = str(exc)
        return
    if not PARSER.parse_mapped(rebuilt).ok:
        st.session_state["mapping_error"] = "Map First Name, Email ID or Phone Number so the customer can be identified."
        return
    st.session_state["pasted_data"] = rebuilt
    st.session_state["mapped_text"] = rebuilt
    st.session_state["mapping_open"] = False
    st.session_state["mapping_notice"] = "Column mapping applied!"


def render_mapping_tool() -> None:
    columns = st.session_state["raw_columns"]
    st.subheader("Map Columns")
    st.caption("Match your pasted columns to our fields. The values shown are from the first row of your data.")
    st.code("  |  ".join(f"[{index + 1}] {value}" for index, value in enumerate(columns)), language=None)

    options = [SKIP] + [str(index) for index in range(len(columns))]

    def option_label(option: str) -> str:
        if option == SKIP:
            return "-- Skip / None --"
        index = int(option)
        return preview_label(index, columns[index])

    left, right = st.columns(2)
    for position, spec in enumerate(PARSER.config.fields):
        with left if position % 2 == 0 else right:
            st.selectbox(spec.label, options=options, format_func=option_label, key=f"map_{spec.key}")

    cancel, apply = st.columns(2)
    cancel.button("Cancel", on_click=lambda: st.session_state.update(mapping_open=False))
    apply.button("Apply Mapping", type="primary", on_click=apply_mapping)


def render_record(record: dict[str, str], strategy: str) -> None:
    st.success(f"Customer detected ({strategy})")
    rows = [{"Field": PARSER.config.label(key), "Value": value} for key, value in record.items()]
    st.dataframe(pd.DataFrame(rows), hide_index=True, width="stretch")

    phone = record.get("phone")
    email = record.get("email")
    message = f"Hello {record.get('firstName', '')}, your order is confirmed."
    links = []
    if phone:
        links.append(f"[WhatsApp]({generate_whatsapp_link(phone, message)})")
    if email:
        links.append(f"[Email]({generate_email_link(email, 'Your order', message)})")
    if links:
        st.markdown(" · ".join(links))


def render_order_form(record: dict[str, str]) -> None:
    store = load_store()
    with st.form("order_form"):
        product_name = st.text_input("Product")
        quantity = st.number_input("Quantity", min_value=1, value=1)
        unit_price = st.number_input("Unit price", min_value=0.0, value=0.0)
        shipping = st.number_input("Shipping", min_value=0.0, value=0.0)
        tax_rate = st.number_input("Tax rate (%)", min_value=0.0, value=float(APP_CONFIG.company["defaultTaxRate"]))
        submitted = st.form_submit_button("Save order")
    if not submitted:
        return

    order = build_order(
        record,
        {
            "orderNumber": store.next_sequence("order"),
            "invoiceNumber": store.next_sequence("invoice"),
            "productName": product_name,
            "quantity": quantity,
            "unitPrice": unit_price,
            "shippingCharges": shipping,
            "taxRate": tax_rate,
            "currency": APP_CONFIG.company["currency"],
            "companyTaxName": APP_CONFIG.company["taxName"],
        },
    )
    order_id = store.save_order(order, advance_sequences=("order", "invoice"))
    store.upsert_customer_from_record(record)
    st.success(f"Order {order['orderNumber']} saved (#{order_id}), total {order['totalAmount']:.2f}")


def main() -> None:
    st.set_page_config(page_title="invoice-genie", page_icon="🧾", layout="wide")
    ensure_state()

    st.title("invoice-genie")
    st.caption("Paste customer rows from Google Sheets, check the detected fields, and save the order.")

    top = st.columns([3, 1, 1])
    top[0].subheader("Customer Data")
    top[1].button("Map Columns", on_click=open_mapping_tool)
    top[2].button("Load Sample", on_click=load_sample)

    uploaded = st.file_uploader("...or upload a CSV/TSV", type=["csv", "tsv", "txt"])
    if uploaded is not None and st.session_state.get("uploaded_name") != uploaded.name:
        st.session_state["uploaded_name"] = uploaded.name
        st.session_state["pasted_data"] = decode_text(uploaded.getvalue())
    url = st.text_input("...or a public Google Sheets link")
    if url and st.button("Fetch"):
        try:
            st.session_state["pasted_data"] = fetch_remote_text(url)
        except Exception as exc:
            st.error(f"Could not fetch {url}: {exc}")

    st.text_area(
        "Paste customer data",
        key="pasted_data",
        height=160,
        placeholder="Paste customer data from Google Sheets here...\n\n"
        "If your data doesn't have headers, paste it and click 'Map Columns' above.",
    )
    with st.expander("Show expected columns"):
        st.code(EXPECTED_COLUMNS, language=None)

    for key, show in (("mapping_error", st.error), ("mapping_notice", st.success)):
        message = st.session_state.pop(key, None)
        if message:
            show(message)

    if st.session_state["mapping_open"]:
        render_mapping_tool()
        return

    text = st.session_state["pasted_data"]
    if not text.strip():
        st.info("Please paste some data first")
        return

    if text == st.session_state.get("mapped_text"):
        outcome = PARSER.parse_mapped(text)
    else:
        outcome = PARSER.parse_detailed(text)
    if not outcome.ok:
        st.warning("Could not detect the customer columns. Use 'Map Columns' to assign them.")
        return

    render_record(outcome.record, outcome.strategy)
    render_order_form(outcome.record)

    with st.expander("Backup"):
        st.download_button(
            "Download backup",
            data=json.dumps(load_store().export_backup(), indent=2, ensure_ascii=False),
            file_name="invoice-genie-backup.json",
            mime="application/json",
        )


if __name__ == "__main__":
    main()
