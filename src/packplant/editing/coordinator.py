from __future__ import annotations

import asyncio
import logging
from dataclasses import fields, is_dataclass, replace
from typing import Any, Awaitable, Callable

from packplant.core.errors import NotFound, PackplantError, ValidationFailed, to_packplant_error
from packplant.core.models import EditState

logger = logging.getLogger(__name__)

SubmitFn = Callable[[str, Any], Awaitable[Any]]
SubmitAddFn = Callable[[Any], Awaitable[Any]]
SubmitDeleteFn = Callable[[str], Awaitable[Any]]
StateListener = Callable[[str, EditState], None]
Notifier = Callable[[str, str], None]


def merge_entity(snapshot: Any, updated: Any) -> Any:
    """Overlay fields returned by the server on the snapshot that was sent."""
    if updated is None:
        return snapshot
    if isinstance(updated, dict):
        if is_dataclass(snapshot):
            known = {f.name for f in fields(snapshot)}
            return replace(snapshot, **{k: v for k, v in updated.items() if k in known})
        return {**snapshot, **updated}
    return updated


class EditCoordinator:
    """Optimistic per-row editing with a debounced full-snapshot commit.

    Rows are immutable values (frozen dataclasses) keyed by `key(row)`.
    `apply` changes the held row at once; the commit of the latest snapshot
    happens `debounce` seconds after the last change to that row. A failed
    commit restores the last snapshot the server accepted.

    Every commit carries the row's edit version. A response for an older
    version is discarded: it neither overwrites a newer local value nor
    reverts it. Edits to a row whose `add` is still in flight are held and
    committed once the add lands.
    """

    def __init__(
        self,
        rows: list[Any],
        *,
        key: Callable[[Any], str],
        submit: SubmitFn,
        submit_add: SubmitAddFn | None = None,
        submit_delete: SubmitDeleteFn | None = None,
        derive: Callable[[Any], Any] | None = None,
        debounce: float = 0.5,
        settle_delay: float = 3.0,
        on_state: StateListener | None = None,
        on_notify: Notifier | None = None,
        label: str = "Registro",
    ):
        self._key = key
        self._submit = submit
        self._submit_add = submit_add
        self._submit_delete = submit_delete
        self._derive = derive or (lambda row: row)
        self.debounce = float(debounce)
        self.settle_delay = float(settle_delay)
        self._on_state = on_state
        self._on_notify = on_notify
        self.label = label

        self.rows: dict[str, Any] = {key(r): r for r in rows}
        self._known_good: dict[str, Any] = dict(self.rows)
        self._versions: dict[str, int] = {k: 0 for k in self.rows}
        self._states: dict[str, EditState] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._decays: dict[str, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task] = set()
        self._adding: set[str] = set()
        self.last_error: dict[str, PackplantError] = {}

    # ---- read side -------------------------------------------------------

    def state(self, entity_id: str) -> EditState:
        return self._states.get(entity_id, EditState.IDLE)

    def known_good(self, entity_id: str) -> Any | None:
        return self._known_good.get(entity_id)

    def values(self) -> list[Any]:
        return list(self.rows.values())

    def has_pending(self) -> bool:
        return bool(self._timers) or any(not t.done() for t in self._tasks)

    # ---- edits -----------------------------------------------------------

    def apply(self, entity_id: str, **changes: Any) -> Any:
        if entity_id not in self.rows:
            raise NotFound(f"{self.label} {entity_id} no encontrado", entity_id=entity_id)
        updated = self._derive(replace(self.rows[entity_id], **changes))
        self.rows[entity_id] = updated
        self._versions[entity_id] = self._versions.get(entity_id, 0) + 1
        self._set_state(entity_id, EditState.SAVING)
        if entity_id not in self._adding:
            # Edits to a row still being created are committed once the add lands.
            self._schedule(entity_id)
        return updated

    def _schedule(self, entity_id: str) -> None:
        loop = asyncio.get_running_loop()
        previous = self._timers.pop(entity_id, None)
        if previous is not None:
            previous.cancel()
        self._timers[entity_id] = loop.call_later(self.debounce, self._fire, entity_id)

    def _fire(self, entity_id: str) -> None:
        self._timers.pop(entity_id, None)
        self._track(self._commit(entity_id))

    def _track(self, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _commit(self, entity_id: str) -> None:
        snapshot = self.rows.get(entity_id)
        if snapshot is None:
            return
        version = self._versions.get(entity_id, 0)
        try:
            updated = await self._submit(entity_id, snapshot)
        except Exception as exc:
            self._commit_failed(entity_id, version, to_packplant_error(exc, entity_id=entity_id))
            return
        self._commit_succeeded(entity_id, version, snapshot, updated)

    def _is_latest(self, entity_id: str, version: int) -> bool:
        return entity_id in self.rows and self._versions.get(entity_id) == version

    def _commit_succeeded(self, entity_id: str, version: int, snapshot: Any, updated: Any) -> None:
        committed = self._derive(merge_entity(snapshot, updated))
        if not self._is_latest(entity_id, version):
            # A newer edit is pending; it owns the row and its status.
            if entity_id in self.rows:
                self._known_good[entity_id] = committed
            logger.debug("Discarded stale response for %s v%s", entity_id, version)
            return
        self.rows[entity_id] = committed
        self._known_good[entity_id] = committed
        self.last_error.pop(entity_id, None)
        logger.info("%s %s saved", self.label, entity_id)
        self._settle(entity_id, EditState.SUCCESS)
        self._notify("positive", f"{self.label} {entity_id} actualizado correctamente")

    def _commit_failed(self, entity_id: str, version: int, err: PackplantError) -> None:
        if isinstance(err, NotFound):
            self._drop(entity_id)
            logger.warning("%s %s no longer exists: %s", self.label, entity_id, err.message)
            self._notify("negative", err.message)
            return
        if not self._is_latest(entity_id, version):
            logger.warning("Stale commit for %s v%s failed: %s", entity_id, version, err.message)
            return
        known = self._known_good.get(entity_id)
        if known is None:
            self._drop(entity_id)
        else:
            self.rows[entity_id] = known
        self.last_error[entity_id] = err
        logger.warning("Reverted %s %s: %s", self.label, entity_id, err.message)
        self._settle(entity_id, EditState.ERROR)
        self._notify("negative", err.message)

    # ---- explicit row actions (not debounced) -----------------------------

    async def add(self, row: Any) -> Any | None:
        if self._submit_add is None:
            raise RuntimeError("add not supported")
        entity_id = self._key(row)
        if entity_id in self.rows:
            raise ValidationFailed(f"Ya existe un registro con el número {entity_id}", entity_id=entity_id)
        row = self._derive(row)
        self.rows[entity_id] = row
        self._versions[entity_id] = 0
        self._set_state(entity_id, EditState.SAVING)
        self._adding.add(entity_id)
        try:
            created = await self._submit_add(row)
        except Exception as exc:
            err = to_packplant_error(exc, entity_id=entity_id)
            self.rows.pop(entity_id, None)
            self._versions.pop(entity_id, None)
            self.last_error[entity_id] = err
            self._settle(entity_id, EditState.ERROR)
            self._notify("negative", err.message)
            return None
        finally:
            self._adding.discard(entity_id)
        committed = self._derive(merge_entity(row, created))
        self._notify("positive", f"{self.label} {entity_id} agregado correctamente")
        if entity_id not in self.rows:
            return committed
        self._known_good[entity_id] = committed
        if self._versions.get(entity_id, 0) != 0:
            # Edited while the add was in flight: keep the local value and commit it.
            self._schedule(entity_id)
            return committed
        self.rows[entity_id] = committed
        self._settle(entity_id, EditState.SUCCESS)
        return committed

    async def delete(self, entity_id: str) -> bool:
        if self._submit_delete is None:
            raise RuntimeError("delete not supported")
        if entity_id not in self.rows:
            raise NotFound(f"{self.label} {entity_id} no encontrado", entity_id=entity_id)
        timer = self._timers.pop(entity_id, None)
        if timer is not None:
            timer.cancel()
        order = list(self.rows)
        position = order.index(entity_id)
        backup = self._known_good.get(entity_id, self.rows[entity_id])
        self.rows.pop(entity_id)
        self._set_state(entity_id, EditState.SAVING)
        try:
            await self._submit_delete(entity_id)
        except Exception as exc:
            err = to_packplant_error(exc, entity_id=entity_id)
            if isinstance(err, NotFound):
                self._drop(entity_id)
                self._notify("negative", err.message)
                return False
            self._restore(entity_id, backup, position)
            self.last_error[entity_id] = err
            self._settle(entity_id, EditState.ERROR)
            self._notify("negative", err.message)
            return False
        self._known_good.pop(entity_id, None)
        self._versions.pop(entity_id, None)
        self._settle(entity_id, EditState.SUCCESS)
        self._notify("positive", f"{self.label} {entity_id} eliminado correctamente")
        return True

    def _restore(self, entity_id: str, row: Any, position: int) -> None:
        items = list(self.rows.items())
        items.insert(position, (entity_id, row))
        self.rows = dict(items)

    def _drop(self, entity_id: str) -> None:
        timer = self._timers.pop(entity_id, None)
        if timer is not None:
            timer.cancel()
        self.rows.pop(entity_id, None)
        self._known_good.pop(entity_id, None)
        self._versions.pop(entity_id, None)
        decay = self._decays.pop(entity_id, None)
        if decay is not None:
            decay.cancel()
        self._set_state(entity_id, EditState.IDLE)

    # ---- status ----------------------------------------------------------

    def _set_state(self, entity_id: str, state: EditState) -> None:
        if state is EditState.IDLE:
            self._states.pop(entity_id, None)
        else:
            self._states[entity_id] = state
        if self._on_state is not None:
            self._on_state(entity_id, state)

    def _settle(self, entity_id: str, state: EditState) -> None:
        self._set_state(entity_id, state)
        previous = self._decays.pop(entity_id, None)
        if previous is not None:
            previous.cancel()
        loop = asyncio.get_running_loop()
        self._decays[entity_id] = loop.call_later(self.settle_delay, self._decay, entity_id, state)

    def _decay(self, entity_id: str, expected: EditState) -> None:
        self._decays.pop(entity_id, None)
        if self.state(entity_id) is expected:
            self._set_state(entity_id, EditState.IDLE)

    def _notify(self, level: str, message: str) -> None:
        if self._on_notify is not None:
            self._on_notify(level, message)

    # ---- lifecycle -------------------------------------------------------

    async def flush(self) -> None:
        """Commit every pending edit now and wait for all commits to settle."""
        for entity_id in list(self._timers):
            self._timers.pop(entity_id).cancel()
            self._track(self._commit(entity_id))
        while True:
            pending = [t for t in self._tasks if not t.done()]
            if not pending:
                break
            await asyncio.gather(*pending)

    def close(self) -> None:
        for handle in (*self._timers.values(), *self._decays.values()):
            handle.cancel()
        self._timers.clear()
        self._decays.clear()
