from __future__ import annotations

import asyncio
import inspect
import logging
from datetime import date

from nicegui import ui

from packplant.cache.events import EventType
from packplant.context import AppContext
from packplant.core import lifecycle
from packplant.core.capacity import MAX_BOXES_PER_ADD, progress_info
from packplant.core.errors import PackplantError, to_packplant_error
from packplant.core.models import EditState, OrderState, Pallet, PalletWeighing
from packplant.core.weighing import WASTE_TYPES
from packplant.data.excel_io import inventory_to_excel_bytes
from packplant.editing.weighing import WeighingTable
from packplant.services.partial_pallets import AddQuantityFlow
from packplant.ui.widgets import edit_state_badge, fmt_kg, kpi_card, notify, page_container, render_nav

logger = logging.getLogger(__name__)

WEIGHING_FIELDS: list[tuple[str, str, float]] = [
    ("gross_weight", "Bruto", 0.1),
    ("box_count", "Cajas", 1),
    ("box_weight", "Kg/caja", 0.01),
    ("pallet_weight", "Tarima", 0.1),
    ("skid_weight", "Patín", 0.1),
]


async def _read_upload(e) -> bytes:
    if hasattr(e, "content"):
        return e.content.read()
    f = getattr(e, "file", None)
    if f is None:
        raise ValueError("No se pudo leer el archivo subido")
    if inspect.iscoroutinefunction(f.read):
        return await f.read()
    return f.read()


def register_pages(ctx: AppContext) -> None:
    repo = ctx.repo
    title = repo.get_config(key="planta", default="Empacadora") or "Empacadora"

    def _fail(ex: Exception, what: str) -> None:
        err = to_packplant_error(ex)
        if not isinstance(ex, PackplantError):
            logger.exception("%s failed", what)
        ui.notify(f"{what}: {err.message}", color="negative")

    def _watch_bus(refresh) -> None:
        """Mark the page stale on cache events; a page timer re-renders it."""
        dirty = {"flag": False}

        def _mark(_event) -> None:
            dirty["flag"] = True

        unsubscribe = ctx.bus.on_many([EventType.CACHE_INVALIDATED, EventType.DATA_UPDATED], _mark)
        ui.context.client.on_disconnect(unsubscribe)

        async def _tick() -> None:
            if dirty["flag"]:
                dirty["flag"] = False
                await refresh()

        ui.timer(1.0, _tick)

    # ---- inventory -------------------------------------------------------

    @ui.page("/")
    async def inventario() -> None:
        render_nav(active="inventario", title=title)
        state: dict = {"selected": None, "type": None}

        with page_container():
            ui.label("Inventario de tarimas").classes("text-2xl font-semibold")
            ui.label("Tarimas registradas y su asignación a pedidos de cliente.").classes("pp-subtitle")

            @ui.refreshable
            async def indicators() -> None:
                try:
                    ind = await ctx.inventory.indicators()
                    summary = await ctx.summary.dashboard(date.today())
                except Exception as ex:
                    _fail(ex, "Error cargando indicadores")
                    return
                with ui.row().classes("w-full gap-4 pp-kpi"):
                    kpi_card("Peso total", fmt_kg(ind.total_weight))
                    kpi_card("Tarimas asignadas", str(ind.assigned_pallets))
                    kpi_card("Tarimas sin asignar", str(ind.unassigned_pallets))
                    kpi_card("Peso sin asignar", fmt_kg(ind.unassigned_weight))
                    kpi_card("Tarimas de hoy", f"{summary['pallets']} ({summary['complete']} completas)")

            @ui.refreshable
            async def table() -> None:
                try:
                    rows = await ctx.inventory.inventory_rows()
                except Exception as ex:
                    _fail(ex, "Error cargando inventario")
                    return
                if state["type"]:
                    rows = [r for r in rows if r.type == state["type"]]
                if not rows:
                    ui.label("(sin tarimas)").classes("text-gray-500")
                    return
                data = [
                    {
                        "_row_id": f"{r.pallet_id}-{r.type}",
                        "pallet_id": r.pallet_id,
                        "code": r.code,
                        "type": r.type,
                        "weight": fmt_kg(r.total_weight),
                        "customer": r.customer,
                        "branch": r.branch,
                        "lot": r.lot,
                        "registered_at": r.registered_at,
                        "status": r.status,
                    }
                    for r in rows
                ]
                tbl = ui.table(
                    columns=[
                        {"name": "code", "label": "Tarima", "field": "code", "sortable": True},
                        {"name": "type", "label": "Tipo", "field": "type", "sortable": True},
                        {"name": "weight", "label": "Peso", "field": "weight"},
                        {"name": "customer", "label": "Cliente", "field": "customer", "sortable": True},
                        {"name": "branch", "label": "Sucursal", "field": "branch"},
                        {"name": "lot", "label": "Lote", "field": "lot"},
                        {"name": "registered_at", "label": "Fecha", "field": "registered_at", "sortable": True},
                        {"name": "status", "label": "Estado", "field": "status"},
                    ],
                    rows=data,
                    row_key="_row_id",
                    selection="single",
                    on_select=lambda e: state.update(selected=(e.selection[0]["pallet_id"] if e.selection else None)),
                ).classes("w-full").props("dense flat bordered")
                tbl.props("rows-per-page-options=[25,50,0]")

            async def refresh() -> None:
                await indicators.refresh()
                await table.refresh()

            async def manual_refresh() -> None:
                ctx.inventory.invalidate("inventario.actualizar")
                await refresh()

            async def on_type_filter(e) -> None:
                state["type"] = e.value or None
                ctx.bus.emit(EventType.FILTERS_CHANGED, "inventario.filtro", {"type": state["type"]})
                await table.refresh()

            async def download() -> None:
                try:
                    rows = await ctx.inventory.inventory_rows()
                    content = await asyncio.to_thread(lambda: inventory_to_excel_bytes(rows))
                except Exception as ex:
                    _fail(ex, "Error exportando inventario")
                    return
                ui.download(content, f"inventario_{date.today().isoformat()}.xlsx")

            customer_orders = {
                int(co["customer_order_id"]): f"{co['code']} · {co['customer']}" for co in repo.get_customer_orders()
            }

            async def assign() -> None:
                if state["selected"] is None or customer_select.value is None:
                    ui.notify("Selecciona una tarima y un pedido", color="warning")
                    return
                try:
                    pallet = await ctx.inventory.assign_pallet(
                        pallet_id=int(state["selected"]),
                        customer_order_id=int(customer_select.value),
                        source="inventario.asignar",
                    )
                except Exception as ex:
                    _fail(ex, "Error asignando tarima")
                    return
                ui.notify(f"Tarima {pallet.code} asignada", type="positive")

            async def unassign() -> None:
                if state["selected"] is None:
                    ui.notify("Selecciona una tarima", color="warning")
                    return
                try:
                    pallet = await ctx.inventory.unassign_pallet(
                        pallet_id=int(state["selected"]), source="inventario.desasignar"
                    )
                except Exception as ex:
                    _fail(ex, "Error desasignando tarima")
                    return
                ui.notify(f"Tarima {pallet.code} sin asignar", type="positive")

            with ui.row().classes("w-full items-center gap-2 mt-2"):
                ui.button("Actualizar", icon="refresh", on_click=manual_refresh).props("flat color=primary")
                ui.button("Descargar Excel", icon="download", on_click=download).props("flat color=primary")
                types = repo.get_classification_types()
                ui.select(types, label="Tipo", clearable=True, on_change=on_type_filter).classes("w-40")
                customer_select = ui.select(customer_orders, label="Pedido de cliente").classes("w-72")
                ui.button("Asignar", on_click=assign).props("unelevated color=primary")
                ui.button("Desasignar", on_click=unassign).props("flat color=negative")

            await indicators()
            await table()
            _watch_bus(refresh)

    # ---- inbound orders ----------------------------------------------------

    @ui.page("/ordenes")
    def ordenes() -> None:
        render_nav(active="ordenes", title=title)
        with page_container():
            ui.label("Órdenes de recepción").classes("text-2xl font-semibold")
            ui.label("Cambia el estado de cada orden según su avance.").classes("pp-subtitle")

            @ui.refreshable
            def orders_list() -> None:
                orders = repo.get_orders()
                if not orders:
                    ui.label("(sin órdenes)").classes("text-gray-500")
                    return
                for order in orders:
                    with ui.card().classes("w-full p-3"):
                        with ui.row().classes("w-full items-center justify-between gap-2"):
                            with ui.column().classes("gap-0"):
                                ui.label(f"{order.code} · {order.supplier or ''}").classes("font-semibold")
                                ui.label(
                                    f"{order.product_name or ''} · Estimada: {order.estimated_date or '-'}"
                                ).classes("text-sm text-slate-600")
                            ui.badge(order.state.value).props("outline")
                            with ui.row().classes("items-center gap-1"):
                                for target in lifecycle.next_states(order.state):
                                    ui.button(
                                        target.value,
                                        on_click=lambda o=order, t=target: change_state(o.id, t),
                                    ).props("dense no-caps flat color=primary")
                                if lifecycle.can_view_weighing(order.state):
                                    ui.button(
                                        "Pesaje", on_click=lambda o=order: ui.navigate.to(f"/ordenes/{o.code}")
                                    ).props("dense no-caps unelevated color=primary")
                                if lifecycle.can_view_classification(order.state):
                                    ui.button(
                                        "Clasificación",
                                        on_click=lambda o=order: ui.navigate.to(f"/clasificacion/{o.id}"),
                                    ).props("dense no-caps unelevated color=secondary")

            def change_state(order_id: int, target) -> None:
                try:
                    order = repo.change_order_state(order_id=order_id, target=target)
                except Exception as ex:
                    _fail(ex, "Error cambiando estado")
                    return
                ui.notify(f"Orden {order.code}: {order.state.value}", type="positive")
                orders_list.refresh()

            async def handle_upload(e) -> None:
                try:
                    content = await _read_upload(e)
                    result = await asyncio.to_thread(lambda: repo.import_orders_excel_bytes(content=content))
                except Exception as ex:
                    _fail(ex, "Error importando órdenes")
                    return
                ui.notify(f"Órdenes importadas: {result['created']}")
                for err in result["errors"][:5]:
                    ui.notify(err, color="warning")
                orders_list.refresh()

            ui.upload(label="Importar órdenes (Excel)", on_upload=handle_upload, auto_upload=True).props(
                "accept=.xlsx max-files=1"
            )
            orders_list()

    # ---- weighing --------------------------------------------------------

    @ui.page("/ordenes/{code}")
    def pesaje(code: str) -> None:
        render_nav(active="ordenes", title=title)
        try:
            order = repo.get_order_by_code(code)
        except Exception as ex:
            with page_container():
                ui.label(f"Orden {code}").classes("text-2xl font-semibold")
            _fail(ex, "Error cargando orden")
            return

        widgets: dict[str, dict] = {}

        def on_state(number: str, st: EditState) -> None:
            w = widgets.get(number)
            if w is None:
                return
            text, color = edit_state_badge(st)
            w["badge"].set_text(text)
            w["badge"].props(f"color={color}")
            if st in {EditState.ERROR, EditState.SUCCESS}:
                sync_row(number)
            totals.refresh()

        table = WeighingTable(repo, order, ctx.settings, on_state=on_state, on_notify=notify)
        ui.context.client.on_disconnect(table.editor.close)

        def sync_row(number: str) -> None:
            row = table.editor.rows.get(number)
            w = widgets.get(number)
            if row is None or w is None:
                return
            for field, _label, _step in WEIGHING_FIELDS:
                if w[field].value != getattr(row, field):
                    w[field].value = getattr(row, field)
            w["tare"].set_text(fmt_kg(row.tare_weight))
            w["net"].set_text(fmt_kg(row.net_weight))

        def on_change(number: str, field: str, value) -> None:
            row = table.editor.rows.get(number)
            if row is None or value is None or getattr(row, field) == value:
                return
            try:
                table.edit(number, **{field: int(value) if field == "box_count" else float(value)})
            except Exception as ex:
                _fail(ex, "Error editando tarima")
                return
            sync_row(number)

        async def add_row() -> None:
            try:
                row = await table.add()
            except Exception as ex:
                _fail(ex, "Error agregando tarima")
                return
            if row is not None:
                rows_view.refresh()

        async def delete_row(number: str) -> None:
            try:
                ok = await table.delete(number)
            except Exception as ex:
                _fail(ex, "Error eliminando tarima")
                return
            if ok:
                rows_view.refresh()

        with page_container():
            ui.label(f"Pesaje · Orden {order.code}").classes("text-2xl font-semibold")
            ui.label(f"{order.supplier or ''} · {order.state.value}").classes("pp-subtitle")
            if not table.editable:
                ui.label("La orden no admite cambios de pesaje en su estado actual.").classes("text-amber-700")

            @ui.refreshable
            def totals() -> None:
                t = table.totals()
                with ui.row().classes("w-full gap-4 pp-kpi"):
                    kpi_card("Tarimas", str(t["pallets"]))
                    kpi_card("Cajas", str(t["boxes"]))
                    kpi_card("Bruto", fmt_kg(t["gross_weight"]))
                    kpi_card("Neto", fmt_kg(t["net_weight"]))

            @ui.refreshable
            def rows_view() -> None:
                widgets.clear()
                rows: list[PalletWeighing] = table.editor.values()
                if not rows:
                    ui.label("(sin tarimas pesadas)").classes("text-gray-500")
                with ui.column().classes("w-full gap-1 pp-weighing-table"):
                    for row in rows:
                        with ui.row().classes("w-full items-center gap-2"):
                            ui.label(row.number).classes("w-16 font-semibold")
                            w: dict = {}
                            for field, label, step in WEIGHING_FIELDS:
                                w[field] = ui.number(
                                    label,
                                    value=getattr(row, field),
                                    min=0,
                                    step=step,
                                    on_change=lambda e, n=row.number, f=field: on_change(n, f, e.value),
                                ).classes("w-24")
                                if not table.editable:
                                    w[field].props("readonly")
                            w["tare"] = ui.label(fmt_kg(row.tare_weight)).classes("w-24 text-slate-600")
                            w["net"] = ui.label(fmt_kg(row.net_weight)).classes("w-24 font-semibold")
                            text, color = edit_state_badge(table.editor.state(row.number))
                            w["badge"] = ui.badge(text).props(f"color={color}")
                            if table.editable:
                                ui.button(
                                    icon="delete", on_click=lambda n=row.number: delete_row(n)
                                ).props("dense flat color=negative")
                            widgets[row.number] = w
                totals.refresh()

            totals()
            rows_view()
            if table.editable:
                ui.button("Agregar tarima", icon="add", on_click=add_row).props("unelevated color=primary")

    # ---- classification --------------------------------------------------

    @ui.page("/clasificacion/{order_id}")
    async def clasificacion(order_id: int) -> None:
        render_nav(active="ordenes", title=title)
        try:
            order = repo.get_order(int(order_id))
        except Exception as ex:
            _fail(ex, "Error cargando orden")
            return

        with page_container():
            ui.label(f"Clasificación · Orden {order.code}").classes("text-2xl font-semibold")
            ui.label(f"{order.product_name or ''} · {order.state.value}").classes("pp-subtitle")

            @ui.refreshable
            async def buckets() -> None:
                classifications = repo.get_classifications(order_id=order.id)
                if not classifications:
                    ui.label("(sin clasificaciones)").classes("text-gray-500")
                    return
                with ui.row().classes("w-full gap-4"):
                    for cls in classifications:
                        bucket = await asyncio.to_thread(
                            lambda c=cls: repo.get_classification_bucket(classification_id=int(c["classification_id"]))
                        )
                        info = progress_info(bucket)
                        with ui.card().classes("p-3 min-w-[220px]"):
                            ui.label(bucket.type).classes("font-semibold")
                            ui.linear_progress(value=min(info["progress"] / 100, 1.0), show_value=False)
                            ui.label(
                                f"{info['committed']:,.0f} / {info['capacity']:,.0f} {info['unit']}"
                            ).classes("text-sm text-slate-600")

            @ui.refreshable
            async def partials() -> None:
                try:
                    pallets = await ctx.inventory.partial_pallets()
                except Exception as ex:
                    _fail(ex, "Error cargando tarimas parciales")
                    return
                if not pallets:
                    ui.label("(sin tarimas parciales)").classes("text-gray-500")
                    return
                for pallet in pallets:
                    with ui.card().classes("w-full p-3"):
                        with ui.row().classes("w-full items-center justify-between"):
                            with ui.column().classes("gap-0"):
                                ui.label(f"{pallet.code} · {fmt_kg(pallet.total_weight)}").classes("font-semibold")
                                detail = ", ".join(f"{c.type}: {c.quantity}" for c in pallet.classifications)
                                ui.label(detail or "(vacía)").classes("text-sm text-slate-600")
                            if order.state is OrderState.CLASSIFYING:
                                ui.button(
                                    "Agregar cajas", on_click=lambda p=pallet: open_add_dialog(p)
                                ).props("dense no-caps unelevated color=primary")

            @ui.refreshable
            async def weights() -> None:
                try:
                    ind = await asyncio.to_thread(lambda: repo.get_weight_indicators(order_id=order.id))
                except Exception as ex:
                    _fail(ex, "Error cargando indicadores de peso")
                    return
                with ui.row().classes("w-full gap-4"):
                    for type_, kg in ind.weights_by_type.items():
                        kpi_card(type_, fmt_kg(kg))
                    kpi_card("Retornos", fmt_kg(ind.returns_weight))
                    kpi_card("Mermas", fmt_kg(ind.waste_weight))
                with ui.column().classes("w-full gap-1 mt-2"):
                    ui.linear_progress(value=min(ind.progress / 100, 1.0), show_value=False)
                    ui.label(
                        f"Progreso {ind.progress:.1f}% · Procesado {fmt_kg(ind.processed_weight)}"
                        f" · Esperado {fmt_kg(ind.expected_weight)}"
                    ).classes("text-sm text-slate-600")

            @ui.refreshable
            async def records() -> None:
                try:
                    wastes, returns = await asyncio.gather(
                        asyncio.to_thread(lambda: repo.get_wastes(order_id=order.id)),
                        asyncio.to_thread(lambda: repo.get_returns(order_id=order.id)),
                    )
                except Exception as ex:
                    _fail(ex, "Error cargando mermas y retornos")
                    return
                recording = lifecycle.can_record_classification(order.state)
                with ui.row().classes("w-full gap-6 items-start"):
                    with ui.column().classes("gap-1 min-w-[260px]"):
                        ui.label("Mermas").classes("font-semibold")
                        if not wastes:
                            ui.label("(sin mermas)").classes("text-gray-500 text-sm")
                        for w in wastes:
                            with ui.row().classes("items-center gap-2"):
                                ui.label(f"{w.type} · {fmt_kg(w.weight)}").classes("text-sm")
                                if recording:
                                    ui.button(
                                        icon="delete",
                                        on_click=lambda w=w: remove(lambda: repo.delete_waste(waste_id=w.id), "merma"),
                                    ).props("flat dense round color=negative")
                    with ui.column().classes("gap-1 min-w-[260px]"):
                        ui.label("Retornos").classes("font-semibold")
                        if not returns:
                            ui.label("(sin retornos)").classes("text-gray-500 text-sm")
                        for r in returns:
                            with ui.row().classes("items-center gap-2"):
                                ui.label(f"{r.number} · {fmt_kg(r.weight)}").classes("text-sm")
                                if recording:
                                    ui.button(
                                        icon="delete",
                                        on_click=lambda r=r: remove(
                                            lambda: repo.delete_return(return_id=r.id), "retorno"
                                        ),
                                    ).props("flat dense round color=negative")

            async def refresh_classification() -> None:
                await buckets.refresh()
                await weights.refresh()
                await records.refresh()
                await partials.refresh()

            async def record(write, what: str, done: str) -> None:
                try:
                    await asyncio.to_thread(write)
                except Exception as ex:
                    _fail(ex, f"No se pudo registrar {what}")
                    return
                ctx.graph.notify_updated(f"clasificacion.{what}", {"order_id": order.id})
                ui.notify(done, type="positive")
                await weights.refresh()
                await records.refresh()

            async def remove(write, what: str) -> None:
                try:
                    await asyncio.to_thread(write)
                except Exception as ex:
                    _fail(ex, f"No se pudo eliminar {what}")
                    return
                ctx.graph.notify_updated(f"clasificacion.{what}", {"order_id": order.id})
                await weights.refresh()
                await records.refresh()

            async def open_add_dialog(pallet: Pallet) -> None:
                classifications = {
                    int(c["classification_id"]): c["type"] for c in repo.get_classifications(order_id=order.id)
                }
                if not classifications:
                    ui.notify("La orden no tiene clasificaciones", color="warning")
                    return
                flows: dict[int, AddQuantityFlow] = {}

                async def current_flow() -> AddQuantityFlow | None:
                    cid = cls_select.value
                    if cid is None:
                        return None
                    if cid not in flows:
                        flow = AddQuantityFlow(
                            repo, ctx.graph, pallet=pallet, classification_id=int(cid), product_id=order.product_id
                        )
                        try:
                            await flow.open()
                        except Exception as ex:
                            _fail(ex, "Error cargando clasificación")
                            return None
                        flows[cid] = flow
                    return flows[cid]

                async def revalidate() -> None:
                    flow = await current_flow()
                    if flow is None:
                        return
                    result = flow.validate(qty.value)
                    message.set_text(result.message or result.warning)
                    message.classes(replace="text-sm " + ("text-red-700" if not result.is_valid else "text-amber-700"))
                    if result.is_valid:
                        save_btn.enable()
                    else:
                        save_btn.disable()

                async def save() -> None:
                    flow = await current_flow()
                    if flow is None:
                        return
                    try:
                        updated = await flow.submit(qty.value, complete=bool(complete.value))
                    except Exception as ex:
                        _fail(ex, "No se pudo agregar")
                        return
                    ui.notify(f"Tarima {updated.code} actualizada", type="positive")
                    dialog.close()
                    await refresh_classification()

                dialog = ui.dialog().props("persistent")
                with dialog, ui.card().classes("w-[min(480px,100%)]"):
                    ui.label(f"Agregar cajas · {pallet.code}").classes("text-lg font-semibold")
                    cls_select = ui.select(classifications, label="Clasificación", on_change=revalidate).classes("w-full")
                    qty = ui.number(
                        "Cajas", value=0, min=0, max=MAX_BOXES_PER_ADD, step=1, on_change=revalidate
                    ).classes("w-full")
                    complete = ui.checkbox("Marcar tarima como completa")
                    message = ui.label("").classes("text-sm")
                    with ui.row().classes("w-full justify-end mt-2"):
                        ui.button("Cerrar", on_click=dialog.close).props("flat")
                        save_btn = ui.button("Agregar", on_click=save).props("unelevated color=primary")
                        save_btn.disable()
                dialog.open()

            async def new_pallet() -> None:
                try:
                    code_value = str(pallet_code.value or "").strip()
                    if not code_value:
                        ui.notify("Ingresa el código de la tarima", color="warning")
                        return
                    await asyncio.to_thread(
                        lambda: repo.create_pallet(code=code_value, box_weight=float(box_weight.value or 0))
                    )
                except Exception as ex:
                    _fail(ex, "Error creando tarima")
                    return
                ctx.graph.invalidate("clasificacion.nueva_tarima")
                ctx.graph.notify_updated("clasificacion.nueva_tarima", {"code": code_value})
                await partials.refresh()

            ui.label("Avance por clasificación").classes("text-lg font-semibold mt-2")
            await buckets()
            ui.label("Indicadores de pesos").classes("text-lg font-semibold mt-2")
            await weights()
            if lifecycle.can_record_classification(order.state):
                waste_types = list(
                    dict.fromkeys([*WASTE_TYPES, *(c["type"] for c in repo.get_classifications(order_id=order.id))])
                )

                async def add_waste() -> None:
                    type_, kg, notes = waste_type.value, waste_kg.value, waste_notes.value or ""
                    await record(
                        lambda: repo.add_waste(order_id=order.id, type=type_, weight=kg, notes=notes),
                        "merma",
                        "Merma registrada",
                    )

                async def add_return() -> None:
                    kg, notes = return_kg.value, return_notes.value or ""
                    await record(
                        lambda: repo.add_return(order_id=order.id, weight=kg, notes=notes), "retorno", "Retorno registrado"
                    )

                with ui.row().classes("w-full items-end gap-2 mt-2"):
                    waste_type = ui.select(waste_types, value="GENERAL", label="Tipo de merma").classes("w-40")
                    waste_kg = ui.number("Peso (kg)", min=0, step=0.01).classes("w-28")
                    waste_notes = ui.input("Observaciones").classes("w-48")
                    ui.button("Registrar merma", icon="add", on_click=add_waste).props("flat color=primary")
                with ui.row().classes("w-full items-end gap-2"):
                    return_kg = ui.number("Peso (kg)", min=0, step=0.01).classes("w-28")
                    return_notes = ui.input("Observaciones").classes("w-48")
                    ui.button("Registrar retorno", icon="add", on_click=add_return).props("flat color=primary")
            await records()
            ui.separator().classes("my-3")
            with ui.row().classes("w-full items-center gap-2"):
                ui.label("Tarimas parciales").classes("text-lg font-semibold")
                pallet_code = ui.input("Código nueva tarima").classes("w-40")
                box_weight = ui.number("Kg/caja", value=1.6, min=0, step=0.01).classes("w-24")
                ui.button("Nueva tarima", icon="add", on_click=new_pallet).props("flat color=primary")
            await partials()
            _watch_bus(refresh_classification)
