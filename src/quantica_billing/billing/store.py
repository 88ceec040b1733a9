"""
File-backed billing state store.

The store is the only holder of mutable billing state. Reads share a lock,
writes are exclusive and rewrite the whole state file before returning.
"""

from __future__ import annotations

import copy
import json
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, TypeVar

import structlog

from quantica_billing.billing.errors import (
    BillingError,
    NotFoundError,
    SerializationError,
    StorageError,
    StorePoisonedError,
)
from quantica_billing.billing.models import ApiKeyRecord, BillingState, PaymentRecord

logger = structlog.get_logger()

T = TypeVar("T")


class ReadWriteLock:
    """
    Many readers or one writer.

    Waiting writers block new readers so a steady stream of validations
    cannot starve settlement. Not reentrant.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class BillingStore:
    """
    Holds the BillingState and its backing JSON file.

    All access goes through read() and write(). A write that fails with
    anything other than a BillingError poisons the store: every later call
    raises StorePoisonedError.
    """

    def __init__(self, path: str | Path):
        """
        Open the store, loading existing state from ``path`` if present.

        Raises:
            StorageError: the file exists but cannot be read
            SerializationError: the file does not hold valid billing state
        """
        self.path = Path(path)
        self._lock = ReadWriteLock()
        self._poisoned = False
        self._state = self._load_state(self.path) if self.path.exists() else BillingState()

        logger.debug(
            "Billing store opened",
            path=str(self.path),
            payments=len(self._state.payments),
            api_keys=len(self._state.api_keys),
        )

    @property
    def is_poisoned(self) -> bool:
        return self._poisoned

    def read(self, reader: Callable[[BillingState], T]) -> T:
        """Run ``reader`` against the current state under the shared lock.

        The state passed in must be treated as read-only.
        """
        with self._lock.read_locked():
            self._check_poisoned()
            return reader(self._state)

    def write(self, writer: Callable[[BillingState], T]) -> T:
        """
        Run ``writer`` against a working copy under the exclusive lock.

        The copy is persisted and then published as the new state. If
        ``writer`` raises or the file cannot be written, the state is left
        exactly as it was.
        """
        with self._lock.write_locked():
            self._check_poisoned()
            try:
                working = self._state.copy()
                output = writer(working)
                self._persist(working)
            except BillingError:
                raise
            except Exception:
                self._poisoned = True
                logger.critical("Billing store poisoned", path=str(self.path), exc_info=True)
                raise
            self._state = working
            return output

    def upsert_payment(self, record: PaymentRecord) -> PaymentRecord:
        """Insert ``record`` or replace the payment with the same id."""

        def apply(state: BillingState) -> PaymentRecord:
            _upsert(state.payments, record)
            return _clone(record)

        return self.write(apply)

    def upsert_api_key(self, record: ApiKeyRecord) -> ApiKeyRecord:
        """Insert ``record`` or replace the API key with the same id."""

        def apply(state: BillingState) -> ApiKeyRecord:
            _upsert(state.api_keys, record)
            return _clone(record)

        return self.write(apply)

    def update_payment(
        self,
        payment_id: str,
        mutator: Callable[[PaymentRecord], None],
    ) -> PaymentRecord:
        """
        Apply ``mutator`` to a stored payment and persist it.

        Raises:
            NotFoundError: no payment has this id
        """

        def apply(state: BillingState) -> PaymentRecord:
            record = find_payment(state, payment_id)
            mutator(record)
            return _clone(record)

        return self.write(apply)

    def update_api_key(
        self,
        record_id: str,
        mutator: Callable[[ApiKeyRecord], None],
    ) -> ApiKeyRecord:
        """
        Apply ``mutator`` to a stored API key and persist it.

        Raises:
            NotFoundError: no API key has this id
        """

        def apply(state: BillingState) -> ApiKeyRecord:
            record = find_api_key(state, record_id)
            mutator(record)
            return _clone(record)

        return self.write(apply)

    def find_api_key(self, predicate: Callable[[ApiKeyRecord], bool]) -> ApiKeyRecord | None:
        """First API key matching ``predicate``, as a copy."""

        def scan(state: BillingState) -> ApiKeyRecord | None:
            for record in state.api_keys:
                if predicate(record):
                    return _clone(record)
            return None

        return self.read(scan)

    def snapshot(self) -> BillingState:
        """Deep copy of the whole state."""
        return self.read(lambda state: state.copy())

    def _check_poisoned(self) -> None:
        if self._poisoned:
            raise StorePoisonedError(f"billing store at {self.path} is unusable after a failed write")

    @staticmethod
    def _load_state(path: Path) -> BillingState:
        try:
            contents = path.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageError(f"cannot read {path}: {e}") from e

        try:
            data = json.loads(contents)
            if not isinstance(data, dict):
                raise TypeError("billing state must be a JSON object")
            return BillingState.from_dict(data)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as e:
            raise SerializationError(f"invalid billing state in {path}: {e}") from e

    def _persist(self, state: BillingState) -> None:
        try:
            serialized = json.dumps(state.to_dict(), indent=2)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"cannot encode billing state: {e}") from e

        tmp_name: str | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(serialized)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as e:
            raise StorageError(f"cannot write {self.path}: {e}") from e
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    logger.warning("Failed to remove temporary state file", path=tmp_name)


def find_payment(state: BillingState, payment_id: str) -> PaymentRecord:
    """Locate a payment by id inside a state view."""
    for record in state.payments:
        if record.id == payment_id:
            return record
    raise NotFoundError(f"payment {payment_id} not found")


def find_api_key(state: BillingState, record_id: str) -> ApiKeyRecord:
    """Locate an API key by id inside a state view."""
    for record in state.api_keys:
        if record.id == record_id:
            return record
    raise NotFoundError(f"api key {record_id} not found")


def _upsert(items: list[Any], record: Any) -> None:
    for index, existing in enumerate(items):
        if existing.id == record.id:
            items[index] = _clone(record)
            return
    items.append(_clone(record))


def _clone(record: T) -> T:
    return copy.deepcopy(record)
