import sqlite3
import logging
from datetime import datetime, timezone
from typing import Dict, Any, Iterator, List, Optional, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from config import config

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """Raised when the store rejects a write"""
    pass


class DuplicateInvoiceError(PersistenceError):
    """Raised when an invoice number already exists"""
    pass


@dataclass
class InvoiceRecord:
    """A prepared invoice ready to be written"""
    seller_gstin: str
    invoice_no: str
    invoice_json: str
    qr_code: bytes


class Database:
    def __init__(self, db_path: str = None):
        self.db_path = db_path or config.database_path
        self._init_db()

    def _init_db(self):
        """Initialize database schema"""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        with self.get_connection() as conn:
            cursor = conn.cursor()

            # Invoices are stored as one JSON document per invoice number
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS invoices (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    seller_gstin TEXT NOT NULL,
                    invoice_no TEXT UNIQUE NOT NULL,
                    invoice_json TEXT NOT NULL,
                    qr_code BLOB,
                    exported INTEGER NOT NULL DEFAULT 0,
                    exported_at TIMESTAMP,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS suppliers (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    gstin TEXT,
                    address TEXT,
                    city TEXT,
                    state TEXT,
                    pincode INTEGER,
                    phone TEXT,
                    email TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_invoices_created
                ON invoices(created_at)
            """)

            logger.info("Database initialized successfully")

    @contextmanager
    def get_connection(self):
        """Get database connection context manager"""
        conn = sqlite3.connect(
            self.db_path,
            timeout=30.0,
            isolation_level=None
        )
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Connection with an explicit transaction, rolled back on any error"""
        with self.get_connection() as conn:
            conn.execute("BEGIN")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def count_invoices(self) -> int:
        with self.get_connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM invoices").fetchone()[0]

    # Invoices

    def save_invoices(self, records: Sequence[InvoiceRecord], upsert: bool = False) -> List[int]:
        """Write a batch of invoices atomically and return their ids.

        With upsert, an existing invoice number has its JSON and QR code
        replaced; without it a duplicate number fails the whole batch.
        """
        ids = []
        try:
            with self.transaction() as conn:
                for record in records:
                    if upsert:
                        conn.execute("""
                            INSERT INTO invoices (seller_gstin, invoice_no, invoice_json, qr_code)
                            VALUES (?, ?, ?, ?)
                            ON CONFLICT (invoice_no) DO UPDATE
                            SET seller_gstin = excluded.seller_gstin,
                                invoice_json = excluded.invoice_json,
                                qr_code = excluded.qr_code,
                                updated_at = CURRENT_TIMESTAMP
                        """, (record.seller_gstin, record.invoice_no, record.invoice_json, record.qr_code))
                    else:
                        conn.execute("""
                            INSERT INTO invoices (seller_gstin, invoice_no, invoice_json, qr_code)
                            VALUES (?, ?, ?, ?)
                        """, (record.seller_gstin, record.invoice_no, record.invoice_json, record.qr_code))

                    row = conn.execute(
                        "SELECT id FROM invoices WHERE invoice_no = ?", (record.invoice_no,)
                    ).fetchone()
                    ids.append(row["id"])
        except sqlite3.IntegrityError as e:
            raise DuplicateInvoiceError(f"Failed to store invoice: {str(e)}") from e
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to store invoice: {str(e)}") from e

        logger.info(f"Saved {len(ids)} invoices (upsert={upsert})")
        return ids

    def list_invoices(self) -> List[Dict[str, Any]]:
        """All invoices, newest first"""
        with self.get_connection() as conn:
            rows = conn.execute("""
                SELECT id, invoice_no, seller_gstin, invoice_json, exported, exported_at, created_at
                FROM invoices
                ORDER BY created_at DESC, id DESC
            """).fetchall()

        return [self._invoice_row(row) for row in rows]

    def get_invoice(self, invoice_id: int) -> Optional[Dict[str, Any]]:
        """Get saved invoice data"""
        with self.get_connection() as conn:
            row = conn.execute("""
                SELECT id, invoice_no, seller_gstin, invoice_json, exported, exported_at, created_at
                FROM invoices
                WHERE id = ?
            """, (invoice_id,)).fetchone()

        return self._invoice_row(row) if row else None

    def get_qr_code(self, invoice_id: int) -> Optional[bytes]:
        with self.get_connection() as conn:
            row = conn.execute(
                "SELECT qr_code FROM invoices WHERE id = ?", (invoice_id,)
            ).fetchone()

        if not row or row["qr_code"] is None:
            return None
        return bytes(row["qr_code"])

    def update_invoice(self, invoice_id: int, record: InvoiceRecord) -> bool:
        """Replace a stored invoice as a whole"""
        try:
            with self.transaction() as conn:
                cursor = conn.execute("""
                    UPDATE invoices
                    SET seller_gstin = ?, invoice_no = ?, invoice_json = ?, qr_code = ?,
                        updated_at = CURRENT_TIMESTAMP
                    WHERE id = ?
                """, (record.seller_gstin, record.invoice_no, record.invoice_json, record.qr_code, invoice_id))
                updated = cursor.rowcount > 0
        except sqlite3.IntegrityError as e:
            raise DuplicateInvoiceError(f"Failed to update invoice: {str(e)}") from e
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to update invoice: {str(e)}") from e

        return updated

    def delete_invoice(self, invoice_id: int) -> bool:
        with self.get_connection() as conn:
            cursor = conn.execute("DELETE FROM invoices WHERE id = ?", (invoice_id,))
            return cursor.rowcount > 0

    def mark_invoice_exported(self, invoice_id: int) -> Optional[str]:
        """Flag an invoice as exported; returns the timestamp or None if missing"""
        exported_at = datetime.now(timezone.utc).isoformat()
        with self.get_connection() as conn:
            cursor = conn.execute("""
                UPDATE invoices
                SET exported = 1, exported_at = ?, updated_at = ?
                WHERE id = ?
            """, (exported_at, exported_at, invoice_id))

            if cursor.rowcount == 0:
                return None

        logger.info(f"Marked invoice {invoice_id} as exported")
        return exported_at

    @staticmethod
    def _invoice_row(row: sqlite3.Row) -> Dict[str, Any]:
        return {
            "id": row["id"],
            "invoice_no": row["invoice_no"],
            "seller_gstin": row["seller_gstin"],
            "invoice_json": row["invoice_json"],
            "exported": bool(row["exported"]),
            "exported_at": row["exported_at"],
            "created_at": row["created_at"],
        }

    # Suppliers

    def list_suppliers(self) -> List[Dict[str, Any]]:
        with self.get_connection() as conn:
            rows = conn.execute("""
                SELECT id, name, gstin, address, city, state, pincode, phone, email, created_at
                FROM suppliers
                ORDER BY created_at DESC, id DESC
            """).fetchall()

        return [dict(row) for row in rows]

    def create_supplier(self, supplier: Dict[str, Any]) -> int:
        with self.get_connection() as conn:
            cursor = conn.execute("""
                INSERT INTO suppliers (name, gstin, address, city, state, pincode, phone, email)
                VALUES (:name, :gstin, :address, :city, :state, :pincode, :phone, :email)
            """, supplier)

            logger.info(f"Created supplier: {supplier['name']}")
            return cursor.lastrowid

    def update_supplier(self, supplier_id: int, supplier: Dict[str, Any]) -> bool:
        with self.get_connection() as conn:
            cursor = conn.execute("""
                UPDATE suppliers
                SET name = :name, gstin = :gstin, address = :address, city = :city,
                    state = :state, pincode = :pincode, phone = :phone, email = :email
                WHERE id = :id
            """, {**supplier, "id": supplier_id})

            return cursor.rowcount > 0

    def delete_supplier(self, supplier_id: int) -> bool:
        with self.get_connection() as conn:
            cursor = conn.execute("DELETE FROM suppliers WHERE id = ?", (supplier_id,))
            return cursor.rowcount > 0
