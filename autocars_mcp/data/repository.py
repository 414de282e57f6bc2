"""In-memory entity repositories and the per-account data bundle."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Any, Generic, Protocol, TypeVar

from autocars_mcp.constants import COLLECTION_KEYS, PROFILE_KEY
from autocars_mcp.data.models import Customer, Expense, Sale, StoreProfile, Vehicle


class _Record(Protocol):
    @property
    def id(self) -> str: ...

    def to_dict(self) -> dict[str, Any]: ...


T = TypeVar("T", bound=_Record)

_DECODERS: dict[str, Any] = {
    "vehicles": Vehicle.from_dict,
    "customers": Customer.from_dict,
    "sales": Sale.from_dict,
    "expenses": Expense.from_dict,
}


class Repository(Generic[T]):
    """Ordered collection, newest first.

    The ``with_*`` methods return the would-be contents without mutating, so a
    caller can hand the new array to a persistence backend first.
    """

    def __init__(self, items: Iterable[T] = ()) -> None:
        self._items: list[T] = list(items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._items))

    def all(self) -> list[T]:
        return list(self._items)

    def get(self, record_id: str) -> T | None:
        for item in self._items:
            if item.id == record_id:
                return item
        return None

    def with_added(self, item: T) -> list[T]:
        return [item, *self._items]

    def with_updated(self, item: T) -> list[T]:
        return [item if existing.id == item.id else existing for existing in self._items]

    def with_removed(self, record_id: str) -> list[T]:
        return [item for item in self._items if item.id != record_id]

    def replace(self, items: Iterable[T]) -> None:
        self._items = list(items)

    def clear(self) -> None:
        self._items = []


def encode_collection(items: Iterable[_Record]) -> list[dict[str, Any]]:
    return [item.to_dict() for item in items]


def decode_collection(key: str, raw: Any) -> list[Any]:
    """Decode one collection; raises ValueError on a malformed payload."""
    if raw is None:
        return []
    # Realtime Database returns sparse arrays as index-keyed objects.
    if isinstance(raw, dict):
        raw = [raw[k] for k in sorted(raw, key=lambda k: int(k) if str(k).isdigit() else 0)]
    if not isinstance(raw, list):
        raise ValueError(f"{key} must be a list, got {type(raw).__name__}")
    decoder = _DECODERS[key]
    return [decoder(entry) for entry in raw if entry is not None]


def encode_changes(changes: dict[str, Any]) -> dict[str, Any]:
    """Encode a ``{collection: [records], storeProfile: profile}`` mapping."""
    payload: dict[str, Any] = {}
    for key, value in changes.items():
        if key == PROFILE_KEY:
            payload[key] = value.to_dict()
        else:
            payload[key] = encode_collection(value)
    return payload


def decode_changes(
    document: dict[str, Any],
    *,
    keys: Iterable[str] | None = None,
) -> dict[str, Any]:
    """Decode the collections (and profile) present in ``document``.

    Keys absent from the document are absent from the result. Raises
    ValueError when any present key is malformed, so callers can reject the
    whole document before touching state.
    """
    wanted = tuple(keys) if keys is not None else (*COLLECTION_KEYS, PROFILE_KEY)
    changes: dict[str, Any] = {}
    for key in wanted:
        if key not in document:
            continue
        if key == PROFILE_KEY:
            if document[key] is not None:
                changes[key] = StoreProfile.from_dict(document[key])
        else:
            changes[key] = decode_collection(key, document[key])
    return changes


class DealershipData:
    """The four collections plus the store profile of one account."""

    def __init__(self) -> None:
        self.vehicles: Repository[Vehicle] = Repository()
        self.customers: Repository[Customer] = Repository()
        self.sales: Repository[Sale] = Repository()
        self.expenses: Repository[Expense] = Repository()
        self.profile = StoreProfile()

    def collection(self, key: str) -> Repository[Any]:
        if key not in COLLECTION_KEYS:
            raise KeyError(key)
        return getattr(self, key)

    def apply(self, changes: dict[str, Any]) -> None:
        """Replace each collection (or the profile) named in ``changes`` wholesale."""
        for key, value in changes.items():
            if key == PROFILE_KEY:
                self.profile = value
            else:
                self.collection(key).replace(value)

    def clear(self) -> None:
        for key in COLLECTION_KEYS:
            self.collection(key).clear()
        self.profile = StoreProfile()

    def to_document(self) -> dict[str, Any]:
        document: dict[str, Any] = {
            key: encode_collection(self.collection(key)) for key in COLLECTION_KEYS
        }
        document[PROFILE_KEY] = self.profile.to_dict()
        return document
