from __future__ import annotations


from contextlib import contextmanager
import sqlite3
from pathlib import Path


class Db:
    def __init__(self, path: Path):
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def connect(self):
        con = sqlite3.connect(self.path, timeout=20.0)
        con.row_factory = sqlite3.Row
        con.execute("PRAGMA foreign_keys=ON;")
        try:
            yield con
            con.commit()
        except Exception:
            con.rollback()
            raise
        finally:
            con.close()

    def ensure_schema(self) -> None:
        con = sqlite3.connect(self.path, timeout=10.0)
        try:
            con.execute("PRAGMA journal_mode=WAL;")
            con.execute("PRAGMA foreign_keys=ON;")

            con.executescript(
                """
                CREATE TABLE IF NOT EXISTS audit_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL DEFAULT(datetime('now', 'localtime')),
                    category TEXT NOT NULL,
                    message TEXT NOT NULL,
                    details TEXT
                );

                CREATE TABLE IF NOT EXISTS app_config (
                    config_key TEXT PRIMARY KEY,
                    config_value TEXT NOT NULL,
                    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS product (
                    product_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    code TEXT NOT NULL UNIQUE,
                    name TEXT NOT NULL,
                    variety TEXT,
                    is_active INTEGER NOT NULL DEFAULT 1
                );

                -- Inbound orders (ordenes de entrada)
                CREATE TABLE IF NOT EXISTS inbound_order (
                    order_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    code TEXT NOT NULL UNIQUE,
                    supplier TEXT,
                    product_id INTEGER,
                    state TEXT NOT NULL DEFAULT 'Pendiente',
                    estimated_date TEXT,
                    registered_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    received_at TEXT,
                    notes TEXT,
                    FOREIGN KEY(product_id) REFERENCES product(product_id)
                );

                CREATE TABLE IF NOT EXISTS pallet_weighing (
                    order_id INTEGER NOT NULL,
                    number TEXT NOT NULL,
                    gross_weight REAL NOT NULL DEFAULT 0,
                    tare_weight REAL NOT NULL DEFAULT 0,
                    pallet_weight REAL NOT NULL DEFAULT 0,
                    skid_weight REAL NOT NULL DEFAULT 0,
                    net_weight REAL NOT NULL DEFAULT 0,
                    box_count INTEGER NOT NULL DEFAULT 0,
                    box_weight REAL NOT NULL DEFAULT 0,
                    notes TEXT NOT NULL DEFAULT '',
                    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY(order_id, number),
                    FOREIGN KEY(order_id) REFERENCES inbound_order(order_id) ON DELETE CASCADE
                );

                -- One classification line per (order, type) with its declared capacity.
                CREATE TABLE IF NOT EXISTS classification (
                    classification_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    order_id INTEGER NOT NULL,
                    type TEXT NOT NULL,
                    capacity REAL NOT NULL,
                    unit TEXT NOT NULL DEFAULT 'cajas',
                    lot TEXT,
                    UNIQUE(order_id, type),
                    FOREIGN KEY(order_id) REFERENCES inbound_order(order_id) ON DELETE CASCADE
                );

                CREATE TABLE IF NOT EXISTS pallet (
                    pallet_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    code TEXT NOT NULL UNIQUE,
                    status TEXT NOT NULL DEFAULT 'PARCIAL',
                    box_weight REAL NOT NULL DEFAULT 0,
                    upc TEXT,
                    notes TEXT,
                    registered_at TEXT NOT NULL DEFAULT(date('now', 'localtime')),
                    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS pallet_classification (
                    pallet_id INTEGER NOT NULL,
                    classification_id INTEGER NOT NULL,
                    type TEXT NOT NULL,
                    quantity INTEGER NOT NULL DEFAULT 0,
                    weight REAL NOT NULL DEFAULT 0,
                    lot TEXT,
                    PRIMARY KEY(pallet_id, classification_id),
                    FOREIGN KEY(pallet_id) REFERENCES pallet(pallet_id) ON DELETE CASCADE,
                    FOREIGN KEY(classification_id) REFERENCES classification(classification_id)
                );

                -- Customer orders (pedidos de cliente)
                CREATE TABLE IF NOT EXISTS customer_order (
                    customer_order_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    code TEXT NOT NULL UNIQUE,
                    customer TEXT NOT NULL,
                    branch TEXT,
                    status TEXT NOT NULL DEFAULT 'Pendiente',
                    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS customer_order_line (
                    customer_order_id INTEGER NOT NULL,
                    type TEXT NOT NULL,
                    product_id INTEGER,
                    required_quantity INTEGER NOT NULL,
                    PRIMARY KEY(customer_order_id, type, product_id),
                    FOREIGN KEY(customer_order_id) REFERENCES customer_order(customer_order_id) ON DELETE CASCADE
                );

                CREATE TABLE IF NOT EXISTS pallet_assignment (
                    pallet_id INTEGER NOT NULL,
                    customer_order_id INTEGER NOT NULL,
                    assigned_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY(pallet_id, customer_order_id),
                    FOREIGN KEY(pallet_id) REFERENCES pallet(pallet_id) ON DELETE CASCADE,
                    FOREIGN KEY(customer_order_id) REFERENCES customer_order(customer_order_id) ON DELETE CASCADE
                );

                -- Weight discarded (mermas) or sent back (retornos) while classifying an order.
                CREATE TABLE IF NOT EXISTS waste (
                    waste_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    order_id INTEGER NOT NULL,
                    type TEXT NOT NULL DEFAULT 'GENERAL',
                    weight REAL NOT NULL,
                    notes TEXT NOT NULL DEFAULT '',
                    registered_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY(order_id) REFERENCES inbound_order(order_id) ON DELETE CASCADE
                );

                CREATE TABLE IF NOT EXISTS order_return (
                    return_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    order_id INTEGER NOT NULL,
                    number TEXT NOT NULL,
                    weight REAL NOT NULL,
                    notes TEXT NOT NULL DEFAULT '',
                    registered_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE(order_id, number),
                    FOREIGN KEY(order_id) REFERENCES inbound_order(order_id) ON DELETE CASCADE
                );

                CREATE INDEX IF NOT EXISTS ix_pallet_classification_cls ON pallet_classification(classification_id);
                CREATE INDEX IF NOT EXISTS ix_pallet_assignment_order ON pallet_assignment(customer_order_id);
                """
            )
            con.commit()
        finally:
            con.close()
