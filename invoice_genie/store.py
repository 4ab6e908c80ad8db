"""
Local SQLite storage for orders, customers, products, settings
and saved column-mapping profiles.

Records go in and out as plain dicts keyed the way the rest of the app
names them (``streetAddress``, ``minStock``); the column names stay
snake_case inside the database. Orders keep their full payload as JSON next
to a few indexed columns.
"""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Mapping, Optional

import pandas as pd

from invoice_genie.contracts import BACKUP_VERSION, utc_now_iso
from invoice_genie.errors import BackupFormatError, StoreError

SEQUENCE_PAD = 4
SEQUENCES = {
    "invoice": ("lastInvoiceSequence", "INV"),
    "order": ("lastOrderSequence", "ORD"),
}
DATA_TABLES = ("orders", "customers", "products", "settings")
EXPORTABLE_TABLES = ("orders", "customers", "products")
DEFAULT_MIN_STOCK = 5

CUSTOMER_COLUMNS = {
    "id": "id",
    "name": "name",
    "email": "email",
    "phone": "phone",
    "building": "building",
    "streetAddress": "street_address",
    "locality": "locality",
    "city": "city",
    "state": "state",
    "pincode": "pincode",
    "taxId": "tax_id",
    "paymentTerms": "payment_terms",
    "notes": "notes",
    "createdAt": "created_at",
}

PRODUCT_COLUMNS = {
    "id": "id",
    "name": "name",
    "description": "description",
    "price": "price",
    "sku": "sku",
    "image": "image",
    "inventory": "inventory",
    "minStock": "min_stock",
    "costPrice": "cost_price",
    "category": "category",
    "createdAt": "created_at",
}


def _to_float(value: Any, default: Optional[float] = 0.0) -> Optional[float]:
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return default


def _to_int(value: Any, default: int = 0) -> int:
    number = _to_float(value, None)
    return default if number is None else int(number)


def _entity_from_row(row: sqlite3.Row, columns: Mapping[str, str]) -> dict[str, Any]:
    return {key: row[column] for key, column in columns.items() if row[column] is not None}


def _params_from_entity(entity: Mapping[str, Any], columns: Mapping[str, str]) -> dict[str, Any]:
    return {column: entity.get(key) for key, column in columns.items()}


class LocalStore:
    """SQLite database backend for local/single-user operation."""

    def __init__(self, db_path: "str | Path") -> None:
        self.db_path = Path(db_path)
        self.init_schema()

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_schema(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self.connect() as conn:
            c = conn.cursor()
            c.execute("""CREATE TABLE IF NOT EXISTS orders (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                order_number TEXT,
                invoice_number TEXT,
                timestamp TEXT,
                order_date TEXT,
                data TEXT NOT NULL
            )""")
            c.execute("""CREATE TABLE IF NOT EXISTS customers (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                email TEXT,
                phone TEXT,
                building TEXT,
                street_address TEXT,
                locality TEXT,
                city TEXT,
                state TEXT,
                pincode TEXT,
                tax_id TEXT,
                payment_terms TEXT,
                notes TEXT,
                created_at TEXT
            )""")
            c.execute("""CREATE TABLE IF NOT EXISTS products (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                description TEXT,
                price REAL NOT NULL DEFAULT 0,
                sku TEXT,
                image TEXT,
                inventory INTEGER NOT NULL DEFAULT 0,
                min_stock INTEGER,
                cost_price REAL,
                category TEXT,
                created_at TEXT
            )""")
            c.execute("""CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value TEXT
            )""")
            c.execute("""CREATE TABLE IF NOT EXISTS mapping_profiles (
                profile_name TEXT PRIMARY KEY,
                mapping_json TEXT NOT NULL,
                created_date TEXT
            )""")
            c.execute("CREATE INDEX IF NOT EXISTS idx_orders_invoice ON orders(invoice_number)")
            c.execute("CREATE INDEX IF NOT EXISTS idx_orders_date ON orders(order_date)")
            c.execute("CREATE INDEX IF NOT EXISTS idx_customers_email ON customers(email)")
            c.execute("CREATE INDEX IF NOT EXISTS idx_customers_phone ON customers(phone)")
            c.execute("CREATE INDEX IF NOT EXISTS idx_products_sku ON products(sku)")

    # ── settings & sequences ───────────────────────────────────────────────

    @staticmethod
    def _get_setting(conn: sqlite3.Connection, key: str, default: Any = None) -> Any:
        row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        return default if row is None else json.loads(row["value"])

    @staticmethod
    def _put_setting(conn: sqlite3.Connection, key: str, value: Any) -> None:
        conn.execute(
            "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
            (key, json.dumps(value)),
        )

    def get_setting(self, key: str, default: Any = None) -> Any:
        with self.connect() as conn:
            return self._get_setting(conn, key, default)

    def put_setting(self, key: str, value: Any) -> None:
        with self.connect() as conn:
            self._put_setting(conn, key, value)

    def next_sequence(self, kind: str) -> str:
        """Peek at the next number, e.g. ``INV-0001``; nothing is reserved."""
        key, prefix = SEQUENCES[kind]
        current = int(self.get_setting(key, 0) or 0)
        return f"{prefix}-{current + 1:0{SEQUENCE_PAD}d}"

    @classmethod
    def _increment_sequence(cls, conn: sqlite3.Connection, kind: str) -> int:
        key, _ = SEQUENCES[kind]
        current = int(cls._get_setting(conn, key, 0) or 0) + 1
        cls._put_setting(conn, key, current)
        return current

    def increment_sequence(self, kind: str) -> int:
        with self.connect() as conn:
            return self._increment_sequence(conn, kind)

    # ── orders ─────────────────────────────────────────────────────────────

    @staticmethod
    def _update_stock(conn: sqlite3.Connection, product_id: int, change: float) -> Optional[int]:
        row = conn.execute("SELECT inventory FROM products WHERE id = ?", (product_id,)).fetchone()
        if row is None:
            return None
        new_stock = int((row["inventory"] or 0) + change)
        conn.execute("UPDATE products SET inventory = ? WHERE id = ?", (new_stock, product_id))
        return new_stock

    def update_stock(self, product_id: int, change: float) -> Optional[int]:
        with self.connect() as conn:
            return self._update_stock(conn, product_id, change)

    @staticmethod
    def _insert_order(conn: sqlite3.Connection, order: Mapping[str, Any]) -> int:
        payload = {key: value for key, value in order.items() if key != "id"}
        cur = conn.execute(
            """INSERT OR REPLACE INTO orders (id, order_number, invoice_number, timestamp, order_date, data)
            VALUES (?, ?, ?, ?, ?, ?)""",
            (
                order.get("id"),
                order.get("orderNumber"),
                order.get("invoiceNumber"),
                order.get("timestamp"),
                order.get("orderDate"),
                json.dumps(payload, ensure_ascii=False),
            ),
        )
        return int(cur.lastrowid)

    def save_order(self, order: Mapping[str, Any], advance_sequences: tuple[str, ...] = ()) -> int:
        """
        Insert an order, deduct the linked product's stock and advance the
        named sequences (``"order"``, ``"invoice"``) in one transaction. A
        ``productId`` that matches no product raises StoreError and nothing
        is saved.
        """
        with self.connect() as conn:
            order_id = self._insert_order(conn, order)
            for kind in advance_sequences:
                self._increment_sequence(conn, kind)
            product_id = order.get("productId")
            quantity = _to_float(order.get("quantity"), None)
            if product_id and quantity is not None and quantity > 0:
                if self._update_stock(conn, int(product_id), -quantity) is None:
                    raise StoreError(f"Unknown product id {product_id}")
        return order_id

    def list_orders(self) -> list[dict[str, Any]]:
        with self.connect() as conn:
            rows = conn.execute("SELECT id, data FROM orders ORDER BY id").fetchall()
        return [{"id": row["id"], **json.loads(row["data"])} for row in rows]

    # ── customers ──────────────────────────────────────────────────────────

    @staticmethod
    def _insert_entity(conn: sqlite3.Connection, table: str, columns: Mapping[str, str], entity: Mapping[str, Any]) -> int:
        params = _params_from_entity(entity, columns)
        names = ", ".join(params)
        placeholders = ", ".join(f":{name}" for name in params)
        cur = conn.execute(f"INSERT OR REPLACE INTO {table} ({names}) VALUES ({placeholders})", params)
        return int(cur.lastrowid)

    def _list_entities(self, table: str, columns: Mapping[str, str]) -> list[dict[str, Any]]:
        with self.connect() as conn:
            rows = conn.execute(f"SELECT * FROM {table} ORDER BY id").fetchall()
        return [_entity_from_row(row, columns) for row in rows]

    def _delete_entity(self, table: str, entity_id: int) -> bool:
        with self.connect() as conn:
            cur = conn.execute(f"DELETE FROM {table} WHERE id = ?", (entity_id,))
        return cur.rowcount > 0

    def add_customer(self, customer: Mapping[str, Any]) -> int:
        if not (customer.get("name") or "").strip():
            raise StoreError("Customer name is required")
        entity = {"createdAt": utc_now_iso(), **customer}
        with self.connect() as conn:
            return self._insert_entity(conn, "customers", CUSTOMER_COLUMNS, entity)

    def list_customers(self) -> list[dict[str, Any]]:
        return self._list_entities("customers", CUSTOMER_COLUMNS)

    def delete_customer(self, customer_id: int) -> bool:
        return self._delete_entity("customers", customer_id)

    def upsert_customer_from_record(self, record: Mapping[str, str]) -> int:
        """
        Save a parsed customer record, updating an existing customer with the
        same email (or phone, when there is no email) instead of duplicating.
        """
        name = " ".join(part for part in (record.get("firstName"), record.get("lastName")) if part)
        entity: dict[str, Any] = {"name": name, "notes": record.get("deliveryNotes")}
        for key in ("email", "phone", "building", "streetAddress", "locality", "city", "state", "pincode"):
            entity[key] = record.get(key)

        with self.connect() as conn:
            existing = None
            for key, column in (("email", "email"), ("phone", "phone")):
                if record.get(key):
                    existing = conn.execute(
                        f"SELECT * FROM customers WHERE {column} = ? ORDER BY id LIMIT 1",
                        (record[key],),
                    ).fetchone()
                    break
            if existing is not None:
                merged = _entity_from_row(existing, CUSTOMER_COLUMNS)
                merged.update({key: value for key, value in entity.items() if value})
                return self._insert_entity(conn, "customers", CUSTOMER_COLUMNS, merged)
            entity["name"] = name or record.get("email") or record.get("phone") or "Unknown"
            entity["createdAt"] = utc_now_iso()
            return self._insert_entity(conn, "customers", CUSTOMER_COLUMNS, entity)

    # ── products ───────────────────────────────────────────────────────────

    def add_product(self, product: Mapping[str, Any]) -> int:
        if not (product.get("name") or "").strip():
            raise StoreError("Product name is required")
        entity = {"inventory": 0, "price": 0, "createdAt": utc_now_iso(), **product}
        with self.connect() as conn:
            return self._insert_entity(conn, "products", PRODUCT_COLUMNS, entity)

    def get_product(self, product_id: int) -> Optional[dict[str, Any]]:
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM products WHERE id = ?", (product_id,)).fetchone()
        return None if row is None else _entity_from_row(row, PRODUCT_COLUMNS)

    def list_products(self) -> list[dict[str, Any]]:
        return self._list_entities("products", PRODUCT_COLUMNS)

    def delete_product(self, product_id: int) -> bool:
        return self._delete_entity("products", product_id)

    def import_products_csv(self, path: "str | Path") -> tuple[int, list[str]]:
        """
        Add products from a CSV with a header row (``name``, ``price``, and
        optionally ``sku``, ``inventory``, ``minStock``, ``category``,
        ``costPrice``). Rows without a name or price are skipped and reported.
        """
        try:
            df = pd.read_csv(path, dtype=str, keep_default_na=False, skip_blank_lines=True)
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as exc:
            raise ValueError(f"Could not parse products CSV: {exc}") from exc

        products: list[dict[str, Any]] = []
        errors: list[str] = []
        created_at = utc_now_iso()
        for index, row in enumerate(df.to_dict(orient="records"), start=1):
            name = (row.get("name") or "").strip()
            price = (row.get("price") or "").strip()
            if not name or not price:
                errors.append(f"Row {index}: Missing name or price")
                continue
            cost_price = (row.get("costPrice") or "").strip()
            products.append(
                {
                    "name": name,
                    "price": _to_float(price),
                    "sku": (row.get("sku") or "").strip() or None,
                    "inventory": _to_int(row.get("inventory")),
                    "minStock": _to_int(row.get("minStock"), DEFAULT_MIN_STOCK),
                    "category": (row.get("category") or "").strip() or None,
                    "costPrice": _to_float(cost_price, None) if cost_price else None,
                    "createdAt": created_at,
                }
            )

        with self.connect() as conn:
            for product in products:
                self._insert_entity(conn, "products", PRODUCT_COLUMNS, product)
        return len(products), errors

    # ── mapping profiles ───────────────────────────────────────────────────

    def save_mapping_profile(self, name: str, mapping: Mapping[str, int]) -> None:
        with self.connect() as conn:
            conn.execute(
                """INSERT OR REPLACE INTO mapping_profiles (profile_name, mapping_json, created_date)
                VALUES (?, ?, ?)""",
                (name, json.dumps(dict(mapping)), utc_now_iso()),
            )

    def load_mapping_profile(self, name: str) -> Optional[dict[str, int]]:
        with self.connect() as conn:
            row = conn.execute(
                "SELECT mapping_json FROM mapping_profiles WHERE profile_name = ?", (name,)
            ).fetchone()
        return None if row is None else {key: int(value) for key, value in json.loads(row["mapping_json"]).items()}

    def list_mapping_profiles(self) -> list[str]:
        with self.connect() as conn:
            rows = conn.execute("SELECT profile_name FROM mapping_profiles ORDER BY profile_name").fetchall()
        return [row["profile_name"] for row in rows]

    # ── backup / restore ───────────────────────────────────────────────────

    def _list_settings(self) -> list[dict[str, Any]]:
        with self.connect() as conn:
            rows = conn.execute("SELECT key, value FROM settings ORDER BY key").fetchall()
        return [{"key": row["key"], "value": json.loads(row["value"])} for row in rows]

    def export_backup(self) -> dict[str, Any]:
        return {
            "version": BACKUP_VERSION,
            "timestamp": utc_now_iso(),
            "data": {
                "orders": self.list_orders(),
                "customers": self.list_customers(),
                "products": self.list_products(),
                "settings": self._list_settings(),
            },
        }

    def import_backup(self, backup: Mapping[str, Any], mode: str = "merge") -> dict[str, int]:
        """
        Restore a backup. ``merge`` keeps current rows and replaces those
        with the same id; ``overwrite`` clears every data table first.
        Returns the number of rows written per table.
        """
        if mode not in ("merge", "overwrite"):
            raise ValueError(f"Unknown import mode '{mode}'. Expected 'merge' or 'overwrite'")
        if not isinstance(backup, Mapping) or not backup.get("version") or not isinstance(backup.get("data"), Mapping):
            raise BackupFormatError("Invalid backup file format")

        data = backup["data"]
        for setting in data.get("settings") or []:
            if not isinstance(setting, Mapping) or not setting.get("key"):
                raise BackupFormatError("Invalid backup file format: every setting needs a 'key'")
        counts ={table: len(data.get(table) or []) for table in DATA_TABLES}
        with self.connect() as conn:
            if mode == "overwrite":
                for table in DATA_TABLES:
                    conn.execute(f"DELETE FROM {table}")
            for order in data.get("orders") or []:
                self._insert_order(conn, order)
            for customer in data.get("customers") or []:
                self._insert_entity(conn, "customers", CUSTOMER_COLUMNS, customer)
            for product in data.get("products") or []:
                self._insert_entity(conn, "products", PRODUCT_COLUMNS, product)
            for setting in data.get("settings") or []:
                self._put_setting(conn, setting["key"], setting.get("value"))
        return counts

    def factory_reset(self) -> None:
        """Clear orders, customers, products and settings. Mapping profiles stay."""
        with self.connect() as conn:
            for table in DATA_TABLES:
                conn.execute(f"DELETE FROM {table}")

    # ── export ─────────────────────────────────────────────────────────────

    def table_frame(self, table: str) -> pd.DataFrame:
        if table == "orders":
            return pd.DataFrame(self.list_orders())
        if table == "customers":
            return pd.DataFrame(self.list_customers(), columns=list(CUSTOMER_COLUMNS))
        if table == "products":
            return pd.DataFrame(self.list_products(), columns=list(PRODUCT_COLUMNS))
        raise ValueError(f"Unknown table '{table}'. Expected one of {', '.join(EXPORTABLE_TABLES)}")

    def export_table(self, table: str, path: "str | Path") -> int:
        """Write a table to .csv or .xlsx (by suffix); returns the row count."""
        path = Path(path)
        df = self.table_frame(table)
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.suffix.lower() == ".xlsx":
            df.to_excel(path, index=False, sheet_name=table.title(), engine="openpyxl")
        else:
            df.to_csv(path, index=False)
        return len(df)
