from __future__ import annotations

import logging
import sqlite3
from dataclasses import asdict
from datetime import date, datetime

from packplant.core import lifecycle
from packplant.core.capacity import as_box_count
from packplant.core.errors import InvalidState, NotFound, ValidationFailed
from packplant.core.models import (
    AuditEntry,
    ClassificationBucket,
    CustomerOrderAvailability,
    CustomerOrderLink,
    Order,
    OrderState,
    Pallet,
    PalletClassification,
    PalletStatus,
    PalletWeighing,
    ReturnRecord,
    Waste,
    WeightIndicators,
)
from packplant.core.weighing import next_return_number, recompute, validate_recorded_weight, validate_weighing
from packplant.data.db import Db
from packplant.data.excel_io import clean_text, coerce_date, normalize_columns, read_excel_bytes

logger = logging.getLogger(__name__)

_WEIGHING_FIELDS = (
    "gross_weight",
    "tare_weight",
    "pallet_weight",
    "skid_weight",
    "net_weight",
    "box_count",
    "box_weight",
    "notes",
)


class Repository:
    """SQLite-backed store behind every screen.

    Methods are blocking; async callers run them with `asyncio.to_thread`.
    """

    def __init__(self, db: Db):
        self.db = db

    # ---- audit / config ----------------------------------------------------

    def log_audit(self, category: str, message: str, details: str | None = None) -> None:
        """Record a business event in the audit log."""
        try:
            with self.db.connect() as con:
                con.execute(
                    "INSERT INTO audit_log (category, message, details) VALUES (?, ?, ?)",
                    (category, message, details),
                )
        except sqlite3.Error:
            # The business change already committed; a lost audit row must not undo it.
            logger.exception("Failed to write audit log: %s %s", category, message)

    def get_recent_audit_entries(self, limit: int = 100) -> list[AuditEntry]:
        with self.db.connect() as con:
            rows = con.execute("SELECT * FROM audit_log ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
            return [
                AuditEntry(
                    id=row["id"],
                    timestamp=row["timestamp"],
                    category=row["category"],
                    message=row["message"],
                    details=row["details"],
                )
                for row in rows
            ]

    def get_config(self, *, key: str, default: str | None = None) -> str | None:
        key = str(key).strip()
        if not key:
            raise ValueError("config key vacío")
        with self.db.connect() as con:
            row = con.execute("SELECT config_value FROM app_config WHERE config_key = ?", (key,)).fetchone()
        if row is None:
            return default
        return str(row[0])

    def set_config(self, *, key: str, value: str) -> None:
        key = str(key).strip()
        if not key:
            raise ValueError("config key vacío")

        with self.db.connect() as con:
            old_val_row = con.execute("SELECT config_value FROM app_config WHERE config_key = ?", (key,)).fetchone()
            old_val = old_val_row[0] if old_val_row else "(none)"
            con.execute(
                """
                INSERT INTO app_config(config_key, config_value, updated_at)
                VALUES(?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(config_key) DO UPDATE SET
                    config_value = excluded.config_value,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (key, str(value)),
            )
        self.log_audit("CONFIG", f"Updated '{key}'", f"From '{old_val}' to '{value}'")

    # ---- products ------------------------------------------------------------

    def create_product(self, *, code: str, name: str, variety: str | None = None) -> int:
        with self.db.connect() as con:
            cur = con.execute(
                "INSERT INTO product(code, name, variety) VALUES(?, ?, ?)",
                (str(code).strip(), str(name).strip(), variety),
            )
            return int(cur.lastrowid)

    def get_products(self) -> list[dict]:
        with self.db.connect() as con:
            rows = con.execute("SELECT * FROM product WHERE is_active = 1 ORDER BY name").fetchall()
        return [dict(r) for r in rows]

    def _product_id_for(self, con: sqlite3.Connection, value: str) -> int | None:
        if not value:
            return None
        row = con.execute(
            "SELECT product_id FROM product WHERE code = ? OR lower(name) = lower(?)",
            (value, value),
        ).fetchone()
        return int(row["product_id"]) if row else None

    # ---- inbound orders --------------------------------------------------------

    @staticmethod
    def _order_from_row(row: sqlite3.Row) -> Order:
        return Order(
            id=int(row["order_id"]),
            code=row["code"],
            state=lifecycle.coerce_order_state(row["state"]),
            supplier=row["supplier"],
            product_id=row["product_id"],
            product_name=row["product_name"],
            estimated_date=row["estimated_date"],
            registered_at=row["registered_at"],
            received_at=row["received_at"],
            notes=row["notes"],
        )

    _ORDER_SELECT = """
        SELECT o.*, p.name AS product_name
        FROM inbound_order o
        LEFT JOIN product p ON p.product_id = o.product_id
    """

    def create_order(
        self,
        *,
        code: str,
        supplier: str | None = None,
        product_id: int | None = None,
        estimated_date: str | None = None,
        notes: str | None = None,
    ) -> Order:
        code = str(code or "").strip()
        if not code:
            raise ValidationFailed("El código de la orden es obligatorio")
        try:
            with self.db.connect() as con:
                cur = con.execute(
                    """
                    INSERT INTO inbound_order(code, supplier, product_id, state, estimated_date, notes)
                    VALUES(?, ?, ?, ?, ?, ?)
                    """,
                    (code, supplier, product_id, OrderState.PENDING.value, estimated_date, notes),
                )
                order_id = int(cur.lastrowid)
        except sqlite3.IntegrityError as exc:
            raise ValidationFailed(f"Ya existe una orden con el código {code}") from exc
        self.log_audit("ORDEN", f"Orden {code} creada")
        return self.get_order(order_id)

    def get_order(self, order_id: int) -> Order:
        with self.db.connect() as con:
            row = con.execute(self._ORDER_SELECT + " WHERE o.order_id = ?", (order_id,)).fetchone()
        if row is None:
            raise NotFound(f"Orden {order_id} no encontrada", entity_id=str(order_id), status=404)
        return self._order_from_row(row)

    def get_order_by_code(self, code: str) -> Order:
        with self.db.connect() as con:
            row = con.execute(self._ORDER_SELECT + " WHERE o.code = ?", (str(code).strip(),)).fetchone()
        if row is None:
            raise NotFound(f"Orden {code} no encontrada", entity_id=str(code), status=404)
        return self._order_from_row(row)

    def get_orders(self, *, state: OrderState | str | None = None) -> list[Order]:
        sql = self._ORDER_SELECT
        params: tuple = ()
        if state is not None:
            sql += " WHERE o.state = ?"
            params = (lifecycle.coerce_order_state(state).value,)
        sql += " ORDER BY o.registered_at DESC, o.order_id DESC"
        with self.db.connect() as con:
            rows = con.execute(sql, params).fetchall()
        return [self._order_from_row(r) for r in rows]

    def change_order_state(self, *, order_id: int, target: OrderState | str) -> Order:
        order = self.get_order(order_id)
        target_state = lifecycle.coerce_order_state(target)
        lifecycle.ensure_transition(order.state, target_state, entity_id=order.code)

        with self.db.connect() as con:
            if target_state is OrderState.RECEIVED:
                con.execute(
                    "UPDATE inbound_order SET state = ?, received_at = datetime('now', 'localtime') WHERE order_id = ?",
                    (target_state.value, order_id),
                )
            else:
                con.execute("UPDATE inbound_order SET state = ? WHERE order_id = ?", (target_state.value, order_id))

        self.log_audit("ORDEN", f"Orden {order.code}: {order.state.value} -> {target_state.value}")
        return self.get_order(order_id)

    def import_orders_excel_bytes(self, *, content: bytes) -> dict:
        """Create Pending inbound orders from an uploaded sheet.

        Expected columns: codigo, proveedor, producto, fecha_estimada.
        Invalid rows are skipped and reported.
        """
        df = normalize_columns(read_excel_bytes(content))
        if "codigo" not in df.columns:
            raise ValueError("Falta la columna 'codigo'")

        created: list[str] = []
        errors: list[str] = []
        for idx, rec in enumerate(df.to_dict(orient="records"), start=2):
            code = clean_text(rec.get("codigo"))
            if not code:
                errors.append(f"Fila {idx}: código vacío")
                continue
            try:
                estimated = None
                if clean_text(rec.get("fecha_estimada")):
                    estimated = coerce_date(rec.get("fecha_estimada"), field="fecha_estimada")
                with self.db.connect() as con:
                    product_id = self._product_id_for(con, clean_text(rec.get("producto")))
                self.create_order(
                    code=code,
                    supplier=clean_text(rec.get("proveedor")) or None,
                    product_id=product_id,
                    estimated_date=estimated,
                )
                created.append(code)
            except (ValueError, ValidationFailed) as exc:
                errors.append(f"Fila {idx}: {exc}")

        if errors:
            logger.warning("Order import skipped %d rows", len(errors))
        self.log_audit("IMPORT", f"Órdenes importadas: {len(created)}", "\n".join(errors) or None)
        return {"created": created, "errors": errors}

    # ---- weighing rows -------------------------------------------------------

    @staticmethod
    def _weighing_from_row(row: sqlite3.Row) -> PalletWeighing:
        return PalletWeighing(
            number=row["number"],
            gross_weight=float(row["gross_weight"]),
            tare_weight=float(row["tare_weight"]),
            pallet_weight=float(row["pallet_weight"]),
            skid_weight=float(row["skid_weight"]),
            net_weight=float(row["net_weight"]),
            box_count=int(row["box_count"]),
            box_weight=float(row["box_weight"]),
            notes=row["notes"] or "",
        )

    def get_weighings(self, *, order_id: int) -> list[PalletWeighing]:
        with self.db.connect() as con:
            rows = con.execute(
                "SELECT * FROM pallet_weighing WHERE order_id = ? ORDER BY number", (order_id,)
            ).fetchall()
        return [self._weighing_from_row(r) for r in rows]

    def add_weighing(self, *, order_id: int, row: PalletWeighing) -> PalletWeighing:
        order = self.get_order(order_id)
        if not lifecycle.can_edit(order.state):
            raise InvalidState(
                f"La orden {order.code} está {order.state.value}; no se pueden agregar tarimas",
                entity_id=order.code,
            )
        row = recompute(row)
        errs = validate_weighing(row)
        if errs:
            raise ValidationFailed(
                "Datos inválidos: " + ", ".join(f"{k}: {v}" for k, v in errs.items()),
                entity_id=row.number,
            )
        values = asdict(row)
        try:
            with self.db.connect() as con:
                con.execute(
                    f"""
                    INSERT INTO pallet_weighing(order_id, number, {", ".join(_WEIGHING_FIELDS)})
                    VALUES(?, ?, {", ".join("?" for _ in _WEIGHING_FIELDS)})
                    """,
                    (order_id, row.number, *(values[f] for f in _WEIGHING_FIELDS)),
                )
        except sqlite3.IntegrityError as exc:
            raise ValidationFailed(f"Ya existe una tarima con el número {row.number}", entity_id=row.number) from exc
        return row

    def update_weighing(self, *, order_id: int, number: str, row: PalletWeighing) -> PalletWeighing:
        """Overwrite every field of a weighing row (the same snapshot twice is a no-op)."""
        row = recompute(row)
        values = asdict(row)
        with self.db.connect() as con:
            cur = con.execute(
                f"""
                UPDATE pallet_weighing
                SET {", ".join(f"{f} = ?" for f in _WEIGHING_FIELDS)}, updated_at = CURRENT_TIMESTAMP
                WHERE order_id = ? AND number = ?
                """,
                (*(values[f] for f in _WEIGHING_FIELDS), order_id, number),
            )
            if cur.rowcount == 0:
                raise NotFound(f"Tarima {number} no encontrada", entity_id=number, status=404)
        return row

    def delete_weighing(self, *, order_id: int, number: str) -> None:
        with self.db.connect() as con:
            cur = con.execute("DELETE FROM pallet_weighing WHERE order_id = ? AND number = ?", (order_id, number))
            if cur.rowcount == 0:
                raise NotFound(f"Tarima {number} no encontrada", entity_id=number, status=404)

    # ---- classification ------------------------------------------------------

    def create_classification(
        self,
        *,
        order_id: int,
        type: str,
        capacity: float,
        unit: str = "cajas",
        lot: str | None = None,
    ) -> int:
        if capacity <= 0:
            raise ValidationFailed("La capacidad debe ser mayor a 0")
        if unit not in {"cajas", "kg"}:
            raise ValueError(f"unidad no soportada: {unit!r}")
        with self.db.connect() as con:
            cur = con.execute(
                "INSERT INTO classification(order_id, type, capacity, unit, lot) VALUES(?, ?, ?, ?, ?)",
                (order_id, str(type).strip(), float(capacity), unit, lot),
            )
            return int(cur.lastrowid)

    def get_classifications(self, *, order_id: int) -> list[dict]:
        with self.db.connect() as con:
            rows = con.execute(
                "SELECT * FROM classification WHERE order_id = ? ORDER BY type", (order_id,)
            ).fetchall()
        return [dict(r) for r in rows]

    def get_classification_types(self) -> list[str]:
        with self.db.connect() as con:
            rows = con.execute("SELECT DISTINCT type FROM classification ORDER BY type").fetchall()
        return [r[0] for r in rows]

    def _classification(self, con: sqlite3.Connection, classification_id: int) -> sqlite3.Row:
        row = con.execute(
            "SELECT * FROM classification WHERE classification_id = ?", (classification_id,)
        ).fetchone()
        if row is None:
            raise NotFound(f"Clasificación {classification_id} no encontrada", status=404)
        return row

    def get_classification_bucket(self, *, classification_id: int, box_weight: float = 1.0) -> ClassificationBucket:
        """Committed total for one (order, type) bucket.

        Box buckets count boxes; kg buckets sum box quantity * box weight, and
        `box_weight` converts the boxes being added.
        """
        with self.db.connect() as con:
            cls = self._classification(con, classification_id)
            entries = con.execute(
                "SELECT quantity, weight FROM pallet_classification WHERE classification_id = ?",
                (classification_id,),
            ).fetchall()
        if cls["unit"] == "kg":
            committed = [float(e["quantity"]) * float(e["weight"]) for e in entries]
            per_unit = float(box_weight)
        else:
            committed = [float(e["quantity"]) for e in entries]
            per_unit = 1.0
        return ClassificationBucket.from_entries(
            order_id=int(cls["order_id"]),
            type=cls["type"],
            capacity=float(cls["capacity"]),
            entries=committed,
            unit=cls["unit"],
            per_unit=per_unit,
        )

    # ---- waste / returns -----------------------------------------------------

    def _ensure_recording(self, order_id: int) -> Order:
        order = self.get_order(order_id)
        if not lifecycle.can_record_classification(order.state):
            raise InvalidState(
                f"La orden {order.code} está {order.state.value}; solo se registran mermas y retornos al clasificar",
                entity_id=order.code,
            )
        return order

    @staticmethod
    def _checked_weight(weight: float | None, entity_id: str | None = None) -> float:
        error = validate_recorded_weight(weight)
        if error:
            raise ValidationFailed(error, entity_id=entity_id)
        return float(weight)

    @staticmethod
    def _waste_from_row(row: sqlite3.Row) -> Waste:
        return Waste(
            id=int(row["waste_id"]),
            order_id=int(row["order_id"]),
            type=row["type"],
            weight=float(row["weight"]),
            notes=row["notes"] or "",
            registered_at=row["registered_at"],
        )

    @staticmethod
    def _return_from_row(row: sqlite3.Row) -> ReturnRecord:
        return ReturnRecord(
            id=int(row["return_id"]),
            order_id=int(row["order_id"]),
            number=row["number"],
            weight=float(row["weight"]),
            notes=row["notes"] or "",
            registered_at=row["registered_at"],
        )

    def get_waste(self, waste_id: int) -> Waste:
        with self.db.connect() as con:
            row = con.execute("SELECT * FROM waste WHERE waste_id = ?", (waste_id,)).fetchone()
        if row is None:
            raise NotFound(f"Merma {waste_id} no encontrada", entity_id=str(waste_id), status=404)
        return self._waste_from_row(row)

    def get_wastes(self, *, order_id: int) -> list[Waste]:
        with self.db.connect() as con:
            rows = con.execute(
                "SELECT * FROM waste WHERE order_id = ? ORDER BY registered_at, waste_id", (order_id,)
            ).fetchall()
        return [self._waste_from_row(r) for r in rows]

    def add_waste(self, *, order_id: int, weight: float, type: str = "GENERAL", notes: str = "") -> Waste:
        order = self._ensure_recording(order_id)
        type_ = clean_text(type)
        if not type_:
            raise ValidationFailed("El tipo de merma es requerido")
        value = self._checked_weight(weight)
        with self.db.connect() as con:
            cur = con.execute(
                "INSERT INTO waste(order_id, type, weight, notes) VALUES(?, ?, ?, ?)",
                (order_id, type_, value, notes or ""),
            )
            waste_id = int(cur.lastrowid)
        self.log_audit("MERMA", f"Orden {order.code}: merma {type_} de {value:.2f} kg")
        return self.get_waste(waste_id)

    def update_waste(
        self, *, waste_id: int, type: str | None = None, weight: float | None = None, notes: str | None = None
    ) -> Waste:
        current = self.get_waste(waste_id)
        self._ensure_recording(current.order_id)
        type_ = current.type if type is None else clean_text(type)
        if not type_:
            raise ValidationFailed("El tipo de merma es requerido", entity_id=str(waste_id))
        value = current.weight if weight is None else self._checked_weight(weight, str(waste_id))
        with self.db.connect() as con:
            con.execute(
                "UPDATE waste SET type = ?, weight = ?, notes = ? WHERE waste_id = ?",
                (type_, value, current.notes if notes is None else notes, waste_id),
            )
        self.log_audit("MERMA", f"Merma {waste_id} actualizada", f"{current.weight:.2f} -> {value:.2f} kg")
        return self.get_waste(waste_id)

    def delete_waste(self, *, waste_id: int) -> None:
        current = self.get_waste(waste_id)
        self._ensure_recording(current.order_id)
        with self.db.connect() as con:
            con.execute("DELETE FROM waste WHERE waste_id = ?", (waste_id,))
        self.log_audit("MERMA", f"Merma {waste_id} eliminada", f"{current.type} {current.weight:.2f} kg")

    def get_return(self, return_id: int) -> ReturnRecord:
        with self.db.connect() as con:
            row = con.execute("SELECT * FROM order_return WHERE return_id = ?", (return_id,)).fetchone()
        if row is None:
            raise NotFound(f"Retorno {return_id} no encontrado", entity_id=str(return_id), status=404)
        return self._return_from_row(row)

    def get_returns(self, *, order_id: int) -> list[ReturnRecord]:
        with self.db.connect() as con:
            rows = con.execute("SELECT * FROM order_return WHERE order_id = ? ORDER BY number", (order_id,)).fetchall()
        return [self._return_from_row(r) for r in rows]

    def add_return(
        self, *, order_id: int, weight: float, number: str | None = None, notes: str = ""
    ) -> ReturnRecord:
        """Record a return; without `number` the first free R-### is used."""
        order = self._ensure_recording(order_id)
        value = self._checked_weight(weight)
        number = clean_text(number) or next_return_number([r.number for r in self.get_returns(order_id=order_id)])
        try:
            with self.db.connect() as con:
                cur = con.execute(
                    "INSERT INTO order_return(order_id, number, weight, notes) VALUES(?, ?, ?, ?)",
                    (order_id, number, value, notes or ""),
                )
                return_id = int(cur.lastrowid)
        except sqlite3.IntegrityError as exc:
            raise ValidationFailed(f"Ya existe un retorno con el número {number}", entity_id=number) from exc
        self.log_audit("RETORNO", f"Orden {order.code}: retorno {number} de {value:.2f} kg")
        return self.get_return(return_id)

    def update_return(
        self, *, return_id: int, number: str | None = None, weight: float | None = None, notes: str | None = None
    ) -> ReturnRecord:
        current = self.get_return(return_id)
        self._ensure_recording(current.order_id)
        number_ = current.number if number is None else clean_text(number)
        if not number_:
            raise ValidationFailed("El número de retorno es requerido", entity_id=current.number)
        value = current.weight if weight is None else self._checked_weight(weight, current.number)
        try:
            with self.db.connect() as con:
                con.execute(
                    "UPDATE order_return SET number = ?, weight = ?, notes = ? WHERE return_id = ?",
                    (number_, value, current.notes if notes is None else notes, return_id),
                )
        except sqlite3.IntegrityError as exc:
            raise ValidationFailed(f"Ya existe un retorno con el número {number_}", entity_id=number_) from exc
        self.log_audit("RETORNO", f"Retorno {number_} actualizado", f"{current.weight:.2f} -> {value:.2f} kg")
        return self.get_return(return_id)

    def delete_return(self, *, return_id: int) -> None:
        current = self.get_return(return_id)
        self._ensure_recording(current.order_id)
        with self.db.connect() as con:
            con.execute("DELETE FROM order_return WHERE return_id = ?", (return_id,))
        self.log_audit("RETORNO", f"Retorno {current.number} eliminado", f"{current.weight:.2f} kg")

    def get_weight_indicators(self, *, order_id: int) -> WeightIndicators:
        """Classified kg per type plus returns and waste, against the order's weighed net."""
        self.get_order(order_id)
        with self.db.connect() as con:
            by_type = con.execute(
                """
                SELECT pc.type AS type, SUM(pc.quantity * pc.weight) AS weight
                FROM pallet_classification pc
                JOIN classification c ON c.classification_id = pc.classification_id
                WHERE c.order_id = ?
                GROUP BY pc.type
                ORDER BY pc.type
                """,
                (order_id,),
            ).fetchall()
            returns = con.execute(
                "SELECT COALESCE(SUM(weight), 0) FROM order_return WHERE order_id = ?", (order_id,)
            ).fetchone()[0]
            waste = con.execute("SELECT COALESCE(SUM(weight), 0) FROM waste WHERE order_id = ?", (order_id,)).fetchone()[0]
            expected = con.execute(
                "SELECT COALESCE(SUM(net_weight), 0) FROM pallet_weighing WHERE order_id = ?", (order_id,)
            ).fetchone()[0]
        return WeightIndicators(
            weights_by_type={r["type"]: float(r["weight"] or 0) for r in by_type},
            returns_weight=float(returns or 0),
            waste_weight=float(waste or 0),
            expected_weight=float(expected or 0),
        )

    # ---- pallets -------------------------------------------------------------

    def create_pallet(
        self,
        *,
        code: str,
        box_weight: float,
        upc: str | None = None,
        notes: str | None = None,
        registered_at: str | None = None,
    ) -> Pallet:
        try:
            with self.db.connect() as con:
                cur = con.execute(
                    """
                    INSERT INTO pallet(code, status, box_weight, upc, notes, registered_at)
                    VALUES(?, ?, ?, ?, ?, COALESCE(?, date('now', 'localtime')))
                    """,
                    (str(code).strip(), PalletStatus.PARTIAL.value, float(box_weight), upc, notes, registered_at),
                )
                pallet_id = int(cur.lastrowid)
        except sqlite3.IntegrityError as exc:
            raise ValidationFailed(f"Ya existe una tarima con el código {code}") from exc
        return self.get_pallet(pallet_id)

    def get_pallet(self, pallet_id: int) -> Pallet:
        pallets = self._load_pallets("WHERE p.pallet_id = ?", (pallet_id,))
        if not pallets:
            raise NotFound(f"Tarima {pallet_id} no encontrada", entity_id=str(pallet_id), status=404)
        return pallets[0]

    def get_pallets(self, *, status: PalletStatus | str | None = None) -> list[Pallet]:
        if status is None:
            return self._load_pallets("", ())
        return self._load_pallets("WHERE p.status = ?", (lifecycle.coerce_pallet_status(status).value,))

    def _load_pallets(self, where: str, params: tuple) -> list[Pallet]:
        with self.db.connect() as con:
            rows = con.execute(f"SELECT p.* FROM pallet p {where} ORDER BY p.pallet_id", params).fetchall()
            if not rows:
                return []
            ids = [int(r["pallet_id"]) for r in rows]
            marks = ",".join("?" for _ in ids)
            cls_rows = con.execute(
                f"""
                SELECT pc.*, c.lot AS classification_lot
                FROM pallet_classification pc
                JOIN classification c ON c.classification_id = pc.classification_id
                WHERE pc.pallet_id IN ({marks})
                ORDER BY pc.pallet_id, pc.type
                """,
                ids,
            ).fetchall()
            link_rows = con.execute(
                f"""
                SELECT pa.pallet_id, co.customer_order_id, co.code, co.customer, co.branch, co.status
                FROM pallet_assignment pa
                JOIN customer_order co ON co.customer_order_id = pa.customer_order_id
                WHERE pa.pallet_id IN ({marks})
                ORDER BY pa.assigned_at
                """,
                ids,
            ).fetchall()

        classifications: dict[int, list[PalletClassification]] = {i: [] for i in ids}
        for r in cls_rows:
            classifications[int(r["pallet_id"])].append(
                PalletClassification(
                    classification_id=int(r["classification_id"]),
                    type=r["type"],
                    quantity=int(r["quantity"]),
                    weight=float(r["weight"]),
                    lot=r["lot"] or r["classification_lot"],
                )
            )
        links: dict[int, list[CustomerOrderLink]] = {i: [] for i in ids}
        for r in link_rows:
            links[int(r["pallet_id"])].append(
                CustomerOrderLink(
                    customer_order_id=int(r["customer_order_id"]),
                    code=r["code"],
                    customer=r["customer"],
                    branch=r["branch"],
                    status=r["status"],
                )
            )

        return [
            Pallet(
                id=int(r["pallet_id"]),
                code=r["code"],
                status=lifecycle.coerce_pallet_status(r["status"]),
                classifications=tuple(classifications[int(r["pallet_id"])]),
                customer_orders=tuple(links[int(r["pallet_id"])]),
                box_weight=float(r["box_weight"]),
                registered_at=r["registered_at"],
                upc=r["upc"],
                notes=r["notes"],
            )
            for r in rows
        ]

    def add_quantity_to_partial(
        self,
        *,
        pallet_id: int,
        classification_id: int,
        quantity: int,
        complete: bool = False,
    ) -> Pallet:
        """Add `quantity` boxes (relative) to a partial pallet, optionally closing it."""
        quantity = as_box_count(quantity)

        with self.db.connect() as con:
            row = con.execute("SELECT * FROM pallet WHERE pallet_id = ?", (pallet_id,)).fetchone()
            if row is None:
                raise NotFound(f"Tarima {pallet_id} no encontrada", entity_id=str(pallet_id), status=404)
            if not lifecycle.can_add_quantity(row["status"]):
                raise InvalidState(f"La tarima {row['code']} está completa", entity_id=row["code"])
            cls = self._classification(con, classification_id)

            con.execute(
                """
                INSERT INTO pallet_classification(pallet_id, classification_id, type, quantity, weight, lot)
                VALUES(?, ?, ?, ?, ?, ?)
                ON CONFLICT(pallet_id, classification_id) DO UPDATE SET
                    quantity = quantity + excluded.quantity
                """,
                (pallet_id, classification_id, cls["type"], quantity, float(row["box_weight"]), cls["lot"]),
            )
            status = PalletStatus.COMPLETE if complete else PalletStatus.PARTIAL
            con.execute(
                "UPDATE pallet SET status = ?, updated_at = CURRENT_TIMESTAMP WHERE pallet_id = ?",
                (status.value, pallet_id),
            )

        self.log_audit(
            "TARIMA",
            f"Tarima {row['code']}: +{quantity} cajas ({cls['type']})",
            f"estatus={status.value}",
        )
        return self.get_pallet(pallet_id)

    def change_pallet_status(self, *, pallet_id: int, target: PalletStatus | str) -> Pallet:
        pallet = self.get_pallet(pallet_id)
        target_status = lifecycle.coerce_pallet_status(target)
        if not lifecycle.can_transition_pallet(pallet.status, target_status):
            raise InvalidState(
                f"La tarima {pallet.code} no puede pasar de {pallet.status.value} a {target_status.value}",
                entity_id=pallet.code,
            )
        with self.db.connect() as con:
            con.execute(
                "UPDATE pallet SET status = ?, updated_at = CURRENT_TIMESTAMP WHERE pallet_id = ?",
                (target_status.value, pallet_id),
            )
        self.log_audit("TARIMA", f"Tarima {pallet.code}: {pallet.status.value} -> {target_status.value}")
        return self.get_pallet(pallet_id)

    # ---- customer orders -----------------------------------------------------

    def create_customer_order(
        self,
        *,
        code: str,
        customer: str,
        branch: str | None = None,
        lines: list[tuple[str, int | None, int]] | None = None,
    ) -> int:
        """`lines` holds (type, product_id, required_quantity)."""
        with self.db.connect() as con:
            cur = con.execute(
                "INSERT INTO customer_order(code, customer, branch) VALUES(?, ?, ?)",
                (str(code).strip(), customer, branch),
            )
            customer_order_id = int(cur.lastrowid)
            for type_, product_id, required in lines or []:
                con.execute(
                    """
                    INSERT INTO customer_order_line(customer_order_id, type, product_id, required_quantity)
                    VALUES(?, ?, ?, ?)
                    """,
                    (customer_order_id, type_, product_id, int(required)),
                )
        return customer_order_id

    def get_customer_orders(self) -> list[dict]:
        with self.db.connect() as con:
            rows = con.execute("SELECT * FROM customer_order ORDER BY created_at DESC").fetchall()
        return [dict(r) for r in rows]

    def get_customer_order_availability(
        self,
        *,
        customer_order_id: int,
        type: str,
        product_id: int | None = None,
    ) -> CustomerOrderAvailability | None:
        """Boxes still needed by a customer order for one type/product, or None when it has no such line."""
        with self.db.connect() as con:
            line = con.execute(
                """
                SELECT COALESCE(SUM(required_quantity), 0) AS required, COUNT(*) AS n
                FROM customer_order_line
                WHERE customer_order_id = ? AND type = ? AND (? IS NULL OR product_id = ?)
                """,
                (customer_order_id, type, product_id, product_id),
            ).fetchone()
            if not line or int(line["n"]) == 0:
                return None
            assigned = con.execute(
                """
                SELECT COALESCE(SUM(pc.quantity), 0)
                FROM pallet_assignment pa
                JOIN pallet_classification pc ON pc.pallet_id = pa.pallet_id
                JOIN classification c ON c.classification_id = pc.classification_id
                JOIN inbound_order o ON o.order_id = c.order_id
                WHERE pa.customer_order_id = ? AND pc.type = ? AND (? IS NULL OR o.product_id = ?)
                """,
                (customer_order_id, type, product_id, product_id),
            ).fetchone()[0]
        return CustomerOrderAvailability(
            customer_order_id=customer_order_id,
            type=type,
            product_id=product_id,
            required_quantity=int(line["required"]),
            assigned_quantity=int(assigned or 0),
        )

    def assign_pallet(self, *, pallet_id: int, customer_order_id: int) -> Pallet:
        pallet = self.get_pallet(pallet_id)
        with self.db.connect() as con:
            if con.execute(
                "SELECT 1 FROM customer_order WHERE customer_order_id = ?", (customer_order_id,)
            ).fetchone() is None:
                raise NotFound(f"Pedido {customer_order_id} no encontrado", status=404)
            con.execute(
                "INSERT OR IGNORE INTO pallet_assignment(pallet_id, customer_order_id) VALUES(?, ?)",
                (pallet_id, customer_order_id),
            )
        self.log_audit("ASIGNACION", f"Tarima {pallet.code} asignada al pedido {customer_order_id}")
        return self.get_pallet(pallet_id)

    def unassign_pallet(self, *, pallet_id: int, customer_order_id: int | None = None) -> Pallet:
        pallet = self.get_pallet(pallet_id)
        with self.db.connect() as con:
            if customer_order_id is None:
                con.execute("DELETE FROM pallet_assignment WHERE pallet_id = ?", (pallet_id,))
            else:
                con.execute(
                    "DELETE FROM pallet_assignment WHERE pallet_id = ? AND customer_order_id = ?",
                    (pallet_id, customer_order_id),
                )
        self.log_audit("ASIGNACION", f"Tarima {pallet.code} desasignada")
        return self.get_pallet(pallet_id)

    # ---- summary queries -----------------------------------------------------

    def get_dashboard_summary(self, *, day: date | str) -> dict:
        d = day.isoformat() if isinstance(day, (date, datetime)) else str(day)
        with self.db.connect() as con:
            by_type = con.execute(
                """
                SELECT pc.type AS type, SUM(pc.quantity) AS boxes, SUM(pc.quantity * pc.weight) AS weight
                FROM pallet p
                JOIN pallet_classification pc ON pc.pallet_id = p.pallet_id
                WHERE p.registered_at = ?
                GROUP BY pc.type
                ORDER BY pc.type
                """,
                (d,),
            ).fetchall()
            counts = con.execute(
                """
                SELECT
                    COUNT(*) AS pallets,
                    SUM(CASE WHEN status = ? THEN 1 ELSE 0 END) AS complete
                FROM pallet WHERE registered_at = ?
                """,
                (PalletStatus.COMPLETE.value, d),
            ).fetchone()
        types = [dict(r) for r in by_type]
        return {
            "day": d,
            "pallets": int(counts["pallets"] or 0),
            "complete": int(counts["complete"] or 0),
            "total_weight": float(sum(t["weight"] or 0 for t in types)),
            "by_type": types,
        }

    def get_daily_weight_by_type(self, *, date_from: date | str, date_to: date | str) -> list[dict]:
        d0 = date_from.isoformat() if isinstance(date_from, date) else str(date_from)
        d1 = date_to.isoformat() if isinstance(date_to, date) else str(date_to)
        with self.db.connect() as con:
            rows = con.execute(
                """
                SELECT p.registered_at AS day, pc.type AS type, SUM(pc.quantity * pc.weight) AS weight
                FROM pallet p
                JOIN pallet_classification pc ON pc.pallet_id = p.pallet_id
                WHERE p.registered_at BETWEEN ? AND ?
                GROUP BY p.registered_at, pc.type
                ORDER BY p.registered_at, pc.type
                """,
                (d0, d1),
            ).fetchall()
        return [dict(r) for r in rows]
