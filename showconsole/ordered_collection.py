"""
Ordered Collection - keyed item storage that preserves display order.

Author: Vítor Eulálio Reis <vitor.reis@proton.me>
Copyright (c) 2025

An ordered collection pairs a mapping from string identifiers to items with
an order list. The order list is always a permutation of the mapping's keys
with no duplicates; every mutating operation keeps this invariant.

Vehicles and mission slots are tracked in ordered collections so that the
cost matrix rows and columns follow the order in which the console displays
them.

Placeholder IDs:
    NEW_ITEM_ID marks an item that is being created and has not been given a
    real ID yet. When such an item (or one with an empty ID) is added, a real
    ID is derived from its `name` attribute.

Usage:
    >>> vehicles = OrderedCollection.from_iterable(snapshot)
    >>> vehicles.add_sorted(Vehicle(id="uav7", position=(3.0, 4.0)))
    >>> [v.id for v in vehicles]
    ['uav1', 'uav2', 'uav7']
"""

import bisect
import dataclasses
import re
from typing import Any, Callable, Dict, Generic, Iterable, Iterator, List, Optional, TypeVar, Union

from .errors import ItemExistsError

T = TypeVar("T")
KeyFunc = Union[str, Callable[[Any], Any]]

NEW_ITEM_ID = "@@newItem"

_DIGITS = re.compile(r"(\d+)")


def natural_sort_key(value: str) -> tuple:
    """Sort key that orders embedded numbers numerically ("uav2" < "uav10")"""
    parts = _DIGITS.split(str(value))
    return tuple(
        (0, int(part), part) if part.isdigit() else (1, part.lower(), part)
        for part in parts
        if part
    )


def choose_unique_id(proposal: str, existing_ids: Iterable[str]) -> str:
    """
    Return an ID based on proposal that is not among existing_ids.

    The proposal itself is returned when free; otherwise "_1", "_2", ... is
    appended until a free ID is found.
    """
    existing = set(existing_ids)
    if proposal not in existing:
        return proposal

    index = 0
    while True:
        index += 1
        candidate = f"{proposal}_{index}"
        if candidate not in existing:
            return candidate


def has_valid_id(item: Any) -> bool:
    """Whether the item carries a real ID (not empty, not the placeholder)"""
    item_id = getattr(item, "id", None)
    return item_id is not None and item_id != "" and item_id != NEW_ITEM_ID


def _make_getter(key: KeyFunc) -> Callable[[Any], Any]:
    if callable(key):
        return key
    return lambda item: getattr(item, key)


class OrderedCollection(Generic[T]):
    """
    Map from identifier to item plus an order list.

    Items are looked up by ID in O(1) and iterated in display order. Items
    are expected to expose their identifier as an `id` attribute; a
    different attribute or a callable can be given as `key` when building a
    collection from an iterable.
    """

    def __init__(self):
        self.by_id: Dict[str, T] = {}
        self.order: List[str] = []

    @classmethod
    def from_iterable(cls, items: Iterable[T], key: KeyFunc = "id") -> "OrderedCollection[T]":
        """Build a collection from items, failing on missing or duplicate keys"""
        getter = _make_getter(key)
        result = cls()

        for index, item in enumerate(items):
            item_id = getter(item)
            if item_id is None:
                raise ValueError(f"Item at index {index} has no key")
            if item_id in result.by_id:
                raise ItemExistsError(item_id)
            result.by_id[item_id] = item
            result.order.append(item_id)

        return result

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self.order)

    def __iter__(self) -> Iterator[T]:
        for item_id in self.order:
            yield self.by_id[item_id]

    def __contains__(self, item_id: object) -> bool:
        return item_id in self.by_id

    def __getitem__(self, item_id: str) -> T:
        return self.by_id[item_id]

    def __repr__(self) -> str:
        return f"OrderedCollection({self.order!r})"

    @property
    def ids(self) -> List[str]:
        return list(self.order)

    def get(self, item_id: str, default: Optional[T] = None) -> Optional[T]:
        return self.by_id.get(item_id, default)

    def ordered(self) -> List[T]:
        return [self.by_id[item_id] for item_id in self.order]

    def first(self) -> Optional[T]:
        return self.by_id[self.order[0]] if self.order else None

    def last(self) -> Optional[T]:
        return self.by_id[self.order[-1]] if self.order else None

    def index_of(self, item_id: str) -> int:
        return self.order.index(item_id)

    def check_invariant(self) -> bool:
        """Whether the order list is a duplicate-free permutation of the keys"""
        return len(self.order) == len(set(self.order)) and set(self.order) == set(self.by_id)

    # ------------------------------------------------------------------
    # Insertion
    # ------------------------------------------------------------------

    def _ensure_valid_id(self, item: T) -> T:
        if has_valid_id(item):
            if item.id in self.by_id:
                raise ItemExistsError(item.id)
            return item

        name = getattr(item, "name", None)
        if not isinstance(name, str):
            raise ValueError("New item needs either an ID or a name")

        new_id = choose_unique_id(name, self.by_id.keys())
        if dataclasses.is_dataclass(item):
            return dataclasses.replace(item, id=new_id)

        item.id = new_id
        return item

    def add_at(self, item: T, index: int) -> T:
        """
        Add item at the given position of the order list.

        Negative indices put the item at the front, indices past the end put
        it at the back. Returns the stored item, which differs from the
        argument when an ID had to be generated for a frozen dataclass.
        """
        is_new = getattr(item, "id", None) == NEW_ITEM_ID
        item = self._ensure_valid_id(item)

        if is_new:
            self.by_id.pop(NEW_ITEM_ID, None)
            if NEW_ITEM_ID in self.order:
                position = self.order.index(NEW_ITEM_ID)
                del self.order[position]
                if position < index:
                    index -= 1

        self.by_id[item.id] = item

        if index <= 0:
            self.order.insert(0, item.id)
        elif index >= len(self.order):
            self.order.append(item.id)
        else:
            self.order.insert(index, item.id)

        return item

    def add_to_back(self, item: T) -> T:
        return self.add_at(item, len(self.order))

    def add_to_front(self, item: T) -> T:
        return self.add_at(item, 0)

    def add_unless_exists_at(self, item: T, index: int) -> Optional[T]:
        """Like add_at() but a no-op when the ID is already taken"""
        try:
            return self.add_at(item, index)
        except ItemExistsError:
            return None

    def _insertion_index(self, item: T, key: KeyFunc) -> int:
        if key == "id":
            keys = [natural_sort_key(item_id) for item_id in self.order]
            return bisect.bisect_left(keys, natural_sort_key(item.id))

        getter = _make_getter(key)
        keys = [getter(self.by_id[item_id]) for item_id in self.order]
        return bisect.bisect_left(keys, getter(item))

    def add_sorted(self, item: T, key: KeyFunc = "id") -> T:
        """
        Insert item keeping a collection that is already sorted by key sorted.

        With the default key, IDs are compared in natural order ("uav2" before
        "uav10"), matching ensure_natural_sort_order() and registry snapshots.
        """
        return self.add_at(item, self._insertion_index(item, key))

    def add_sorted_unless_exists(self, item: T, key: KeyFunc = "id") -> Optional[T]:
        return self.add_unless_exists_at(item, self._insertion_index(item, key))

    def replace_or_add_sorted(self, item: T, key: KeyFunc = "id") -> T:
        if has_valid_id(item) and item.id in self.by_id:
            self.by_id[item.id] = item
            return item
        return self.add_sorted(item, key)

    def replace_or_add_to_front(self, item: T) -> T:
        if has_valid_id(item) and item.id in self.by_id:
            self.by_id[item.id] = item
            return item
        return self.add_to_front(item)

    # ------------------------------------------------------------------
    # Removal and reordering
    # ------------------------------------------------------------------

    def delete(self, item_id: str):
        """Remove an item; unknown IDs are ignored"""
        self.by_id.pop(item_id, None)
        if item_id in self.order:
            self.order.remove(item_id)

    def delete_many(self, item_ids: Iterable[str]):
        to_remove = set(item_ids)
        for item_id in to_remove:
            self.by_id.pop(item_id, None)
        self.order = [item_id for item_id in self.order if item_id not in to_remove]

    def maybe_delete_many(self, item_ids: Iterable[str]):
        """Remove only those IDs that are actually present"""
        self.delete_many(item_id for item_id in item_ids if item_id in self.by_id)

    def clear(self):
        self.by_id = {}
        self.order = []

    def reorder(self, new_order: Iterable[str]):
        """Replace the order list; it must be a permutation of the current keys"""
        new_order = list(new_order)
        if len(new_order) != len(set(new_order)) or set(new_order) != set(self.by_id):
            raise ValueError("New order must be a permutation of the collection keys")
        self.order = new_order

    def ensure_natural_sort_order(self):
        self.order = sorted(self.order, key=natural_sort_key)

    def copy(self) -> "OrderedCollection[T]":
        result = OrderedCollection()
        result.by_id = dict(self.by_id)
        result.order = list(self.order)
        return result
