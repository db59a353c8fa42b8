"""
Sync Service - reconciles the local cache with the remote record store.

Two data modes:
- local: the local cache is authoritative and always writable
- remote: the remote store is authoritative while reachable; when it is not,
  the local cache is served read-only

State that used to be ambient (mode flag, pending queue, sync status) lives
in an explicit SyncContext handed to the SyncCoordinator. The context is
loaded from and persisted to device-local cache entries.

Write paths:
- push(payload): generic bulk path, restricted to operational collections
  (settings keys, delivery log, ready/history collections, routes, dish
  completions, bag reminders, portal data). Master data kinds are skipped.
  An unreachable store queues the payload.
- save_client / save_driver / save_recipe: direct writes for admin-curated
  master data
- save_menu_item / update_menu_item / delete_menu_item / approve_menu_item /
  approve_all: menu changes written through to the remote menus, so a
  later remote load does not undo them

The pending queue is a ring buffer of 10 {payload, timestamp} entries.
Replay runs every entry in order and clears the queue only when all of them
succeed. Each queued payload counts as one unit even though it fans out to
several remote writes; a failed entry may leave some of its writes applied.
"""

import copy
import logging
from collections import deque
from contextlib import nullcontext
from typing import Any, Callable, Dict, List, Optional

from src.models import DataMode, OrderStatus
from src.services import client_service, driver_service, order_service
from src.services.database import session_scope
from src.services.deadline_service import parse_date
from src.services.dto import LoadResult, MigrationResult, PushResult, SyncStatus
from src.services.exceptions import (
    ConnectivityError,
    QueueReplayError,
    ReadOnlyModeError,
    ValidationError,
)
from src.services.logging_utils import get_service_logger, log_operation
from src.services.remote_store import RemoteStore
from src.services.settings_service import (
    cache_entries_with_prefix,
    delete_cache_entry,
    get_cache_entry,
    set_cache_entry,
)
from src.services.snapshot_service import (
    client_to_document,
    dataset_counts,
    driver_to_document,
    export_dataset,
    normalize_client_record,
    normalize_driver_record,
    order_to_document,
    replace_local_dataset,
)
from src.utils.constants import (
    CACHE_KEY_DATA_MODE,
    CACHE_KEY_PASSTHROUGH_PREFIX,
    CACHE_KEY_PENDING_SAVES,
    CACHE_KEY_SYNC_STATUS,
    KIND_CLIENTS,
    KIND_DRIVERS,
    KIND_INGREDIENTS,
    KIND_MENUS,
    KIND_PORTAL_DATA,
    KIND_RECIPES,
    MASTER_KINDS,
    PASSTHROUGH_KINDS,
    PENDING_QUEUE_LIMIT,
    SETTINGS_KINDS,
)
from src.utils.datetime_utils import to_naive_utc, utc_now

logger = get_service_logger(__name__)

PORTAL_COLLECTION = "clientPortalData"

# Document collections allowed through push()
OPERATIONAL_KINDS = tuple(SETTINGS_KINDS) + (PORTAL_COLLECTION, KIND_PORTAL_DATA)

ModeListener = Callable[[DataMode], None]


def _timestamp(now=None) -> str:
    return to_naive_utc(now or utc_now()).isoformat() + "Z"


def menu_document(order) -> Dict[str, Any]:
    """Remote menus record of an order; anything past pending counts as approved."""
    document = order_to_document(order)
    document["approved"] = order.status is not OrderStatus.MENU_PENDING
    return document


# =============================================================================
# Context
# =============================================================================


class SyncContext:
    """
    Mode flag, pending queue and sync status of this device.

    Lifecycle: load() reads the persisted state, persist() writes it back,
    reset() returns to defaults (local mode, empty queue, migration not
    done) and removes the persisted entries.

    Attributes:
        mode: Current DataMode
        pending: deque of {"payload", "timestamp"} capped at queue_limit
        status: SyncStatus (last sync, migration gate, online flag)
        writable: False during read-only fallback
    """

    def __init__(self, mode: DataMode = DataMode.LOCAL, queue_limit: int = PENDING_QUEUE_LIMIT):
        self.mode = DataMode(mode)
        self.pending: deque = deque(maxlen=queue_limit)
        self.status = SyncStatus()
        self.writable = True
        self._listeners: List[ModeListener] = []

    @classmethod
    def load(cls, session=None, queue_limit: int = PENDING_QUEUE_LIMIT) -> "SyncContext":
        """Build a context from the persisted cache entries."""
        cm = nullcontext(session) if session is not None else session_scope()
        with cm as session:
            raw_mode = get_cache_entry(CACHE_KEY_DATA_MODE, default=DataMode.LOCAL.value, session=session)
            try:
                mode = DataMode(raw_mode)
            except ValueError:
                mode = DataMode.LOCAL
            context = cls(mode=mode, queue_limit=queue_limit)
            context.status = SyncStatus.from_document(
                get_cache_entry(CACHE_KEY_SYNC_STATUS, session=session)
            )
            for entry in get_cache_entry(CACHE_KEY_PENDING_SAVES, default=[], session=session):
                context.pending.append(entry)
            return context

    def persist(self, session=None) -> None:
        """
        Write mode, status and queue to the local cache.

        Raises:
            PersistenceError: If the cache cannot be written
        """
        cm = nullcontext(session) if session is not None else session_scope()
        with cm as session:
            set_cache_entry(CACHE_KEY_DATA_MODE, self.mode.value, session=session)
            set_cache_entry(CACHE_KEY_SYNC_STATUS, self.status.to_document(), session=session)
            set_cache_entry(CACHE_KEY_PENDING_SAVES, list(self.pending), session=session)

    def reset(self, session=None) -> None:
        self.mode = DataMode.LOCAL
        self.pending.clear()
        self.status = SyncStatus()
        self.writable = True
        cm = nullcontext(session) if session is not None else session_scope()
        with cm as session:
            for key in (CACHE_KEY_DATA_MODE, CACHE_KEY_SYNC_STATUS, CACHE_KEY_PENDING_SAVES):
                delete_cache_entry(key, session=session)

    @property
    def is_remote(self) -> bool:
        return self.mode is DataMode.REMOTE

    @property
    def queue_length(self) -> int:
        return len(self.pending)

    def enqueue(self, payload: Dict[str, Any], now=None) -> int:
        """Queue a payload; the oldest entry is evicted beyond the cap."""
        self.pending.append({"payload": copy.deepcopy(payload), "timestamp": _timestamp(now)})
        return len(self.pending)

    def add_listener(self, listener: ModeListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: ModeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def notify(self) -> None:
        for listener in list(self._listeners):
            listener(self.mode)


# =============================================================================
# Coordinator
# =============================================================================


class SyncCoordinator:
    """
    Single entry point for loading data and writing it to the remote store.

    Remote calls are made synchronously from this object only. A new load
    does not cancel an earlier one; whichever finishes last wins.
    """

    def __init__(self, store: RemoteStore, context: Optional[SyncContext] = None):
        self.store = store
        self.context = context if context is not None else SyncContext.load()

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def fetch_remote_document(self) -> Dict[str, Any]:
        """
        Assemble the dataset document from the remote store.

        Raises:
            ConnectivityError: If any fetch fails
        """
        settings = self.store.fetch_settings()
        document = {
            "clients": self.store.fetch_all(KIND_CLIENTS),
            "drivers": self.store.fetch_all(KIND_DRIVERS),
            "menuItems": self.store.fetch_all(KIND_MENUS),
            PORTAL_COLLECTION: {
                record["clientName"]: {k: v for k, v in record.items() if k != "clientName"}
                for record in self.store.fetch_all(KIND_PORTAL_DATA)
                if record.get("clientName")
            },
        }
        for key in SETTINGS_KINDS:
            if key in settings and settings[key] is not None:
                document[key] = settings[key]
        document["lastSaved"] = _timestamp()
        return document

    def _refresh_passthrough(self, session) -> None:
        for kind in PASSTHROUGH_KINDS:
            set_cache_entry(
                CACHE_KEY_PASSTHROUGH_PREFIX + kind,
                self.store.fetch_all(kind),
                session=session,
            )

    def load(self, now=None) -> LoadResult:
        """
        Load the dataset according to the data mode.

        Local mode serves the local cache, writable. Remote mode probes the
        store: when reachable, the remote dataset replaces the local cache
        and the app is writable; otherwise (or if the fetch fails) the local
        cache is served read-only.

        Returns:
            LoadResult
        """
        if not self.context.is_remote:
            self.context.writable = True
            counts = dataset_counts(export_dataset())
            log_operation(logger, "load", "local", **counts)
            return LoadResult(DataMode.LOCAL.value, "local", True, self.context.status.is_online, counts)

        online = self.store.check_connection()
        self.context.status.is_online = online
        if online:
            try:
                document = self.fetch_remote_document()
                with session_scope() as session:
                    replace_local_dataset(document, session=session)
                    self._refresh_passthrough(session)
                self.context.writable = True
                self.context.status.last_synced_at = _timestamp(now)
                self.context.persist()
                counts = dataset_counts(document)
                log_operation(logger, "load", "remote", **counts)
                return LoadResult(DataMode.REMOTE.value, "remote", True, True, counts)
            except ConnectivityError as e:
                self.context.status.is_online = False
                log_operation(logger, "load", "fetch_failed", level=logging.WARNING, error=str(e))

        self.context.writable = False
        self.context.persist()
        counts = dataset_counts(export_dataset())
        log_operation(logger, "load", "read_only_fallback", level=logging.WARNING, **counts)
        return LoadResult(DataMode.REMOTE.value, "local", False, False, counts)

    def require_writable(self) -> None:
        """
        Raises:
            ReadOnlyModeError: During read-only fallback
        """
        if not self.context.writable:
            raise ReadOnlyModeError()

    # -------------------------------------------------------------------------
    # Generic push and the pending queue
    # -------------------------------------------------------------------------

    def operational_payload(self, kinds: Optional[List[str]] = None) -> Dict[str, Any]:
        """Build a push payload of operational collections from the local cache."""
        document = export_dataset()
        wanted = kinds or [k for k in SETTINGS_KINDS] + [PORTAL_COLLECTION]
        return {key: document[key] for key in wanted if key in document}

    def _write_payload(self, payload: Dict[str, Any]) -> List[str]:
        written = []
        for key, value in payload.items():
            if key in SETTINGS_KINDS:
                self.store.save_setting(key, value)
            elif key == PORTAL_COLLECTION:
                self.store.save_many(
                    KIND_PORTAL_DATA,
                    [{"clientName": name, **data} for name, data in (value or {}).items()],
                )
            elif key == KIND_PORTAL_DATA:
                self.store.save_many(KIND_PORTAL_DATA, value or [])
            written.append(key)
        return written

    def push(self, payload: Dict[str, Any], now=None) -> PushResult:
        """
        Write operational collections to the remote store.

        Master kinds and unknown keys are skipped and reported. In local
        mode nothing is sent. When the store cannot be reached the allowed
        part of the payload is queued.

        Returns:
            PushResult
        """
        allowed = {k: v for k, v in payload.items() if k in OPERATIONAL_KINDS}
        skipped = [k for k in payload if k not in OPERATIONAL_KINDS]
        for key in skipped:
            if key in MASTER_KINDS:
                log_operation(logger, "push", "master_kind_skipped", level=logging.DEBUG, kind=key)

        if not allowed:
            return PushResult(skipped=skipped, queue_length=self.context.queue_length)

        if not self.context.is_remote:
            return PushResult(skipped=list(payload), queue_length=self.context.queue_length)

        if not self.store.check_connection():
            return self._queue(allowed, skipped, now)
        try:
            pushed = self._write_payload(allowed)
        except ConnectivityError as e:
            log_operation(logger, "push", "write_failed", level=logging.WARNING, error=str(e))
            return self._queue(allowed, skipped, now)

        self.context.status.is_online = True
        self.context.status.last_synced_at = _timestamp(now)
        self.context.persist()
        log_operation(logger, "push", "success", kinds=",".join(pushed))
        return PushResult(pushed=pushed, skipped=skipped, queue_length=self.context.queue_length)

    def _queue(self, allowed: Dict[str, Any], skipped: List[str], now) -> PushResult:
        self.context.status.is_online = False
        length = self.context.enqueue(allowed, now)
        self.context.persist()
        log_operation(logger, "push", "queued", level=logging.WARNING, queue_length=length)
        return PushResult(skipped=skipped, queued=True, queue_length=length)

    def replay_pending(self) -> int:
        """
        Replay every queued payload in order.

        The queue is cleared only when every entry succeeds.

        Returns:
            Number of payloads replayed

        Raises:
            ConnectivityError: If the store is still unreachable
            QueueReplayError: If any entry failed (the queue is kept intact)
        """
        if not self.context.pending:
            return 0
        if not self.store.check_connection():
            raise ConnectivityError("Still offline")

        processed = 0
        errors = []
        for entry in list(self.context.pending):
            try:
                self._write_payload(entry["payload"])
                processed += 1
            except ConnectivityError as e:
                errors.append(f"{entry['timestamp']}: {e}")

        if errors:
            log_operation(
                logger,
                "replay_pending",
                "partial_failure",
                level=logging.WARNING,
                processed=processed,
                failed=len(errors),
            )
            raise QueueReplayError(processed, errors)

        self.context.pending.clear()
        self.context.status.last_synced_at = _timestamp()
        self.context.persist()
        log_operation(logger, "replay_pending", "success", processed=processed)
        return processed

    def check_connectivity(self) -> bool:
        """
        Probe the store, replaying the pending queue when it is reachable.

        A failed replay keeps the queue for the next check.
        """
        online = self.store.check_connection()
        self.context.status.is_online = online
        if online and self.context.pending:
            try:
                self.replay_pending()
            except (ConnectivityError, QueueReplayError) as e:
                log_operation(logger, "check_connectivity", "replay_deferred", level=logging.WARNING, error=str(e))
        self.context.persist()
        return online

    # -------------------------------------------------------------------------
    # Migration and mode
    # -------------------------------------------------------------------------

    def migrate_local_to_remote(self, now=None) -> MigrationResult:
        """
        Push the whole local dataset to the remote store, once.

        The migrationComplete gate makes later calls no-ops. An empty local
        dataset sets the gate without writing anything.
        """
        if self.context.status.migration_complete:
            return MigrationResult(False, reason="Migration already complete")
        if not self.store.check_connection():
            return MigrationResult(False, reason="Remote store not available for migration")

        document = export_dataset()
        passthrough = cache_entries_with_prefix(CACHE_KEY_PASSTHROUGH_PREFIX)
        has_data = any(
            document.get(key) for key in ("clients", "drivers", "menuItems", "readyForDelivery", "orderHistory", "deliveryLog")
        )
        if not has_data and not any(passthrough.values()):
            self._complete_migration(now)
            return MigrationResult(False, reason="No local data to migrate")

        kinds = []
        for kind, records in (
            (KIND_CLIENTS, document["clients"]),
            (KIND_DRIVERS, document["drivers"]),
            (KIND_MENUS, document["menuItems"]),
        ):
            if records:
                self.store.save_many(kind, records)
                kinds.append(kind)
        for kind in PASSTHROUGH_KINDS:
            if passthrough.get(kind):
                self.store.save_many(kind, passthrough[kind])
                kinds.append(kind)
        kinds.extend(self._write_payload(self.operational_payload()))

        self._complete_migration(now)
        log_operation(logger, "migrate_local_to_remote", "success", kinds=",".join(kinds))
        return MigrationResult(True, kinds=kinds)

    def _complete_migration(self, now) -> None:
        self.context.status.migration_complete = True
        self.context.status.last_synced_at = _timestamp(now)
        self.context.persist()

    def set_mode(self, mode) -> DataMode:
        """
        Switch data mode, persist it and notify listeners.

        Raises:
            ValidationError: If mode is not "local" or "remote"
        """
        try:
            new_mode = DataMode(mode)
        except ValueError:
            raise ValidationError([f"Unknown data mode '{mode}'"])
        self.context.mode = new_mode
        if new_mode is DataMode.LOCAL:
            self.context.writable = True
        self.context.persist()
        log_operation(logger, "set_mode", "success", mode=new_mode.value)
        self.context.notify()
        return new_mode

    # -------------------------------------------------------------------------
    # Direct writes for master data
    # -------------------------------------------------------------------------

    def _remote_write(self, kind: str, record: Dict[str, Any]) -> None:
        if self.context.is_remote:
            self.store.save_one(kind, record)

    def save_client(self, data: Dict, session=None):
        """
        Create or update a client locally and on the remote store.

        The local change rolls back when the remote write fails.

        Raises:
            ReadOnlyModeError: During read-only fallback
            ConnectivityError: If the remote write fails in remote mode
        """
        self.require_writable()
        name = normalize_client_record(data)["name"]
        cm = nullcontext(session) if session is not None else session_scope()
        with cm as session:
            if client_service.get_client_or_none(name, session=session) is None:
                client = client_service.create_client(data, session=session)
            else:
                client = client_service.update_client(name, data, session=session)
            self._remote_write(KIND_CLIENTS, client_to_document(client))
            return client

    def save_driver(self, data: Dict, session=None):
        """Create or update a driver locally and on the remote store."""
        self.require_writable()
        name = normalize_driver_record(data)["name"]
        cm = nullcontext(session) if session is not None else session_scope()
        with cm as session:
            existing = [d for d in driver_service.list_drivers(session=session) if d.name == name]
            if existing:
                driver = driver_service.update_driver(name, data, session=session)
            else:
                driver = driver_service.create_driver(data, session=session)
            self._remote_write(KIND_DRIVERS, driver_to_document(driver))
            return driver

    def save_menu_item(self, data: Dict, now=None, enforce_deadline: bool = True, session=None):
        """Plan a menu item locally and write it to the remote menus."""
        self.require_writable()
        cm = nullcontext(session) if session is not None else session_scope()
        with cm as session:
            order = order_service.create_menu_item(
                data, now=now, enforce_deadline=enforce_deadline, session=session
            )
            self._remote_write(KIND_MENUS, menu_document(order))
            return order

    def update_menu_item(
        self, client_name: str, delivery_date, changes: Dict, now=None, enforce_deadline: bool = True, session=None
    ):
        """Edit a pending menu item locally and on the remote menus."""
        self.require_writable()
        cm = nullcontext(session) if session is not None else session_scope()
        with cm as session:
            order = order_service.update_menu_item(
                client_name, delivery_date, changes, now=now, enforce_deadline=enforce_deadline, session=session
            )
            self._remote_write(KIND_MENUS, menu_document(order))
            return order

    def delete_menu_item(
        self, client_name: str, delivery_date, now=None, enforce_deadline: bool = True, session=None
    ) -> None:
        """Remove a menu item locally and from the remote menus."""
        self.require_writable()
        cm = nullcontext(session) if session is not None else session_scope()
        with cm as session:
            order_service.delete_menu_item(
                client_name, delivery_date, now=now, enforce_deadline=enforce_deadline, session=session
            )
            if self.context.is_remote:
                self.store.delete_one(
                    KIND_MENUS, {"clientName": client_name, "date": parse_date(delivery_date).isoformat()}
                )

    def approve_menu_item(self, client_name: str, delivery_date, now=None, session=None):
        """
        Approve a menu item locally and mark it approved on the remote menus.

        Raises:
            ReadOnlyModeError: During read-only fallback
            ConnectivityError: If the remote write fails in remote mode
        """
        self.require_writable()
        cm = nullcontext(session) if session is not None else session_scope()
        with cm as session:
            order = order_service.approve_menu_item(client_name, delivery_date, now=now, session=session)
            self._remote_write(KIND_MENUS, menu_document(order))
            return order

    def approve_all(self, delivery_date=None, now=None, session=None):
        """Approve every pending menu item; all or none reach the remote menus."""
        self.require_writable()
        cm = nullcontext(session) if session is not None else session_scope()
        with cm as session:
            approved = order_service.approve_all(delivery_date=delivery_date, now=now, session=session)
            for order in approved:
                self._remote_write(KIND_MENUS, menu_document(order))
            return approved

    def save_recipe(self, recipe: Dict[str, Any], session=None) -> Dict[str, Any]:
        """
        Store an opaque recipe document (replacing one with the same name
        and category) and write it to the remote store.
        """
        self.require_writable()
        if not recipe.get("name"):
            raise ValidationError(["Recipe name is required"])
        return self._save_passthrough(KIND_RECIPES, recipe, ("name", "category"), session)

    def save_ingredient(self, ingredient: Dict[str, Any], session=None) -> Dict[str, Any]:
        self.require_writable()
        if not ingredient.get("name"):
            raise ValidationError(["Ingredient name is required"])
        return self._save_passthrough(KIND_INGREDIENTS, ingredient, ("name",), session)

    def _save_passthrough(self, kind: str, record: Dict[str, Any], key_fields, session) -> Dict[str, Any]:
        cache_key = CACHE_KEY_PASSTHROUGH_PREFIX + kind
        cm = nullcontext(session) if session is not None else session_scope()
        with cm as session:
            records = [
                r
                for r in get_cache_entry(cache_key, default=[], session=session)
                if tuple(r.get(f) for f in key_fields) != tuple(record.get(f) for f in key_fields)
            ]
            records.append(dict(record))
            set_cache_entry(cache_key, records, session=session)
            self._remote_write(kind, record)
            return record

    def passthrough_records(self, kind: str) -> List[Dict[str, Any]]:
        """Opaque documents (recipes, ingredients, weeks) held locally."""
        return list(get_cache_entry(CACHE_KEY_PASSTHROUGH_PREFIX + kind, default=[]))
