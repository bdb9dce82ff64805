"""Client State Repository - File-backed per-client workflow progress"""
import errno
import json
import os
import re
import threading
import weakref
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TypeVar, Union

from pydantic import ValidationError as PydanticValidationError

from ..config.settings import Settings, get_settings
from ..domain.models import ClientState
from ..domain.enums import InitializePolicy
from ..domain.errors import (
    AlreadyExistsError, ClientStateNotFoundError, CorruptRecordError, StorageError, ValidationError
)
from .legacy_source import LegacyClientSource, YamlLegacyClientSource
from ..utils.idgen import generate_temp_suffix
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

CLIENT_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.@-]{0,127}$")
RECORD_SUFFIX = ".json"

# Errno values worth one more attempt
TRANSIENT_ERRNOS = frozenset({errno.EAGAIN, errno.EBUSY, errno.EINTR, errno.ETIMEDOUT})

# Top-level fields a partial update may touch (clientId is immutable)
UPDATABLE_FIELDS = frozenset(
    name for name in ClientState.model_fields if name not in ("client_id", "last_updated")
)


class ClientStateRepository:
    """
    Durable client states, one JSON file per client

    Every write lands in a temp file next to the record and is committed
    with an atomic rename, so readers only ever see a complete record.
    Read-modify-write operations on the same client are serialized with a
    per-client lock; different clients never wait on each other.
    """

    def __init__(
        self,
        state_dir: Union[str, Path],
        initialize_policy: InitializePolicy = InitializePolicy.FAIL,
        legacy_source: Optional[LegacyClientSource] = None,
    ):
        self.state_dir = Path(state_dir)
        self.initialize_policy = InitializePolicy(initialize_policy)
        self.legacy_source = legacy_source
        # Entries vanish once no operation holds the lock
        self._locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()
        self.state_dir.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ClientStateRepository":
        settings = settings or get_settings()
        return cls(
            settings.state_dir,
            initialize_policy=settings.initialize_policy,
            legacy_source=YamlLegacyClientSource.from_settings(settings),
        )

    # =========================================================================
    # CRUD
    # =========================================================================

    def initialize(self, client_id: str, workflow_id: str, initial_step_id: str) -> ClientState:
        """
        Create a fresh record at the workflow's initial step

        Raises:
            AlreadyExistsError: A record exists and the policy is ``fail``
        """
        path = self._path(client_id)
        state = ClientState(
            client_id=client_id,
            workflow_id=workflow_id,
            current_step_id=initial_step_id,
            last_updated=utc_now(),
        )

        with self._lock_for(client_id):
            if self.initialize_policy == InitializePolicy.OVERWRITE:
                self._commit(path, state)
            elif not self._commit(path, state, exclusive=True):
                raise AlreadyExistsError(
                    f"Client state for {client_id} already exists",
                    details={"client_id": client_id}
                )

        logger.info(
            f"Initialized client {client_id} on {workflow_id} at {initial_step_id}",
            extra={"client_id": client_id, "workflow_id": workflow_id, "step_id": initial_step_id}
        )
        return state

    def load(self, client_id: str) -> Optional[ClientState]:
        """Full persisted record, or None if the client is unknown"""
        return self._read(self._path(client_id))

    def load_or_raise(self, client_id: str) -> ClientState:
        state = self.load(client_id)
        if state is None:
            raise ClientStateNotFoundError(
                f"No client state for {client_id}",
                details={"client_id": client_id}
            )
        return state

    def exists(self, client_id: str) -> bool:
        return self._path(client_id).exists()

    def save(self, client_id: str, state: ClientState) -> ClientState:
        """Overwrite the whole record; stamps ``last_updated`` on ``state``"""
        if state.client_id != client_id:
            raise ValidationError(
                f"State belongs to {state.client_id}, not {client_id}",
                details={"client_id": client_id, "state_client_id": state.client_id}
            )
        path = self._path(client_id)

        with self._lock_for(client_id):
            state.last_updated = utc_now()
            self._commit(path, state)

        logger.debug(
            f"Saved client {client_id} at {state.current_step_id}",
            extra={"client_id": client_id, "step_id": state.current_step_id}
        )
        return state

    def update(self, client_id: str, fields: Dict[str, Any]) -> ClientState:
        """
        Shallow-merge top-level fields into the existing record

        Field names may be camelCase or snake_case. Nested mappings such as
        ``collectedInputs`` are replaced wholesale.

        Raises:
            ClientStateNotFoundError: No record for client
            ValidationError: Unknown or immutable field, or invalid value
        """
        updates = self._normalize_update(client_id, fields)

        def apply(current: ClientState) -> ClientState:
            merged = current.model_dump()
            merged.update(updates)
            try:
                return ClientState.model_validate(merged)
            except PydanticValidationError as e:
                raise ValidationError(
                    f"Invalid update for client {client_id}: {e.errors()[0].get('msg')}",
                    details={"client_id": client_id, "fields": sorted(updates)}
                )

        state = self.modify(client_id, apply)

        logger.debug(
            f"Updated client {client_id}: {', '.join(sorted(updates))}",
            extra={"client_id": client_id}
        )
        return state

    def modify(self, client_id: str, mutate: Callable[[ClientState], ClientState]) -> ClientState:
        """
        Apply ``mutate`` to the current record and commit the result

        The read, the mutation and the write happen under the client's lock.

        Raises:
            ClientStateNotFoundError: No record for client
        """
        path = self._path(client_id)
        with self._lock_for(client_id):
            current = self._read(path)
            if current is None:
                raise ClientStateNotFoundError(
                    f"No client state for {client_id}",
                    details={"client_id": client_id}
                )
            state = mutate(current)
            if state.client_id != client_id:
                raise ValidationError(
                    "clientId cannot be changed",
                    details={"client_id": client_id}
                )
            state.last_updated = utc_now()
            self._commit(path, state)
        return state

    def delete(self, client_id: str) -> bool:
        """Remove the record; True if one existed"""
        path = self._path(client_id)
        with self._lock_for(client_id):
            try:
                self._with_retry(path, lambda: os.remove(path), missing_ok=True)
            except FileNotFoundError:
                return False

        logger.info(f"Deleted client {client_id}", extra={"client_id": client_id})
        return True

    def list(self) -> List[str]:
        """All known client ids, sorted"""
        return sorted(
            path.name[:-len(RECORD_SUFFIX)]
            for path in self.state_dir.glob(f"*{RECORD_SUFFIX}")
            if not path.name.startswith(".")
        )

    # =========================================================================
    # Legacy Migration
    # =========================================================================

    def migrate_legacy_data(self) -> int:
        """
        Import legacy records that have no native record yet

        Idempotent: ids already present are skipped, and each import is an
        exclusive create, so a record created concurrently is never replaced.

        Returns:
            Number of newly migrated records
        """
        if self.legacy_source is None:
            return 0

        migrated = 0
        skipped = 0
        for state in self.legacy_source.iter_client_states():
            try:
                path = self._path(state.client_id)
            except ValidationError as e:
                logger.warning(f"Skipping legacy client: {e.message}", extra={"client_id": state.client_id})
                continue

            with self._lock_for(state.client_id):
                if self._commit(path, state, exclusive=True):
                    migrated += 1
                else:
                    skipped += 1

        logger.info(
            f"Legacy migration complete: {migrated} migrated, {skipped} already present",
            extra={"action": "migrate_legacy_data", "count": migrated}
        )
        return migrated

    # =========================================================================
    # Internals
    # =========================================================================

    def _path(self, client_id: str) -> Path:
        if not isinstance(client_id, str) or not CLIENT_ID_RE.match(client_id):
            raise ValidationError(
                f"Invalid client id: {client_id!r}",
                details={"client_id": client_id}
            )
        return self.state_dir / f"{client_id}{RECORD_SUFFIX}"

    def _lock_for(self, client_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(client_id)
            if lock is None:
                lock = self._locks[client_id] = threading.Lock()
            return lock

    def _normalize_update(self, client_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        by_alias = {
            info.alias or name: name for name, info in ClientState.model_fields.items()
        }
        updates: Dict[str, Any] = {}
        for key, value in fields.items():
            name = by_alias.get(key, key)
            if name == "client_id":
                if value != client_id:
                    raise ValidationError(
                        "clientId cannot be changed",
                        details={"client_id": client_id, "field": key}
                    )
                continue
            if name not in UPDATABLE_FIELDS:
                raise ValidationError(
                    f"Unknown client state field: {key}",
                    details={"client_id": client_id, "field": key}
                )
            updates[name] = value
        return updates

    def _read(self, path: Path) -> Optional[ClientState]:
        try:
            raw = self._with_retry(path, lambda: path.read_text(encoding="utf-8"), missing_ok=True)
        except FileNotFoundError:
            return None

        try:
            return ClientState.model_validate(json.loads(raw))
        except (json.JSONDecodeError, PydanticValidationError) as e:
            logger.error(f"Corrupt client record {path.name}: {str(e)[:500]}", extra={"path": str(path)})
            raise CorruptRecordError(
                f"Client record {path.name} could not be decoded",
                details={"path": str(path)}
            )

    def _commit(self, path: Path, state: ClientState, exclusive: bool = False) -> bool:
        """
        Write ``state`` to ``path`` atomically

        Args:
            exclusive: Only create; leave an existing record untouched

        Returns:
            False if ``exclusive`` and the record already existed
        """
        payload = json.dumps(state.to_record(), indent=2, sort_keys=True)
        tmp_path = path.with_name(f".{path.name}.{generate_temp_suffix()}.tmp")

        def write() -> bool:
            try:
                with open(tmp_path, "w", encoding="utf-8") as f:
                    f.write(payload)
                    f.flush()
                    os.fsync(f.fileno())
                if not exclusive:
                    os.replace(tmp_path, path)
                    return True
                try:
                    os.link(tmp_path, path)
                except FileExistsError:
                    return False
                return True
            finally:
                if tmp_path.exists():
                    tmp_path.unlink()

        return self._with_retry(path, write)

    def _with_retry(self, path: Path, operation: Callable[[], T], missing_ok: bool = False) -> T:
        """
        Run a file operation, retrying once on a transient error

        Args:
            missing_ok: Let FileNotFoundError through for the caller to handle;
                otherwise it is a StorageError like any other failure
        """
        for attempt in (1, 2):
            try:
                return operation()
            except OSError as e:
                if missing_ok and isinstance(e, FileNotFoundError):
                    raise
                if attempt == 1 and e.errno in TRANSIENT_ERRNOS:
                    logger.warning(f"Transient I/O error on {path.name}, retrying: {e}", extra={"path": str(path)})
                    continue
                raise StorageError(
                    f"Storage failure on {path.name}: {e}",
                    details={"path": str(path), "errno": e.errno}
                )
        raise StorageError(f"Storage failure on {path.name}", details={"path": str(path)})
