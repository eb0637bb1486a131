"""
Unit tests for the ordered collection

Tests cover:
- Construction from iterables (missing / duplicate keys)
- Positional and sorted insertion
- ID generation from names
- Deletion, reordering and natural sort order
- Order/keys invariant after every operation
"""

from dataclasses import dataclass
from typing import Optional

import pytest

from showconsole.errors import ItemExistsError
from showconsole.models import Vehicle
from showconsole.ordered_collection import (
    NEW_ITEM_ID,
    OrderedCollection,
    choose_unique_id,
    natural_sort_key,
)


@dataclass(frozen=True)
class Item:
    id: Optional[str]
    name: Optional[str] = None


def make_collection(*ids):
    return OrderedCollection.from_iterable(Item(item_id) for item_id in ids)


class TestConstruction:
    """Test building collections"""

    def test_from_iterable_preserves_order(self):
        """Iteration follows the input order"""
        collection = make_collection("c", "a", "b")
        assert collection.ids == ["c", "a", "b"]
        assert [item.id for item in collection] == ["c", "a", "b"]

    def test_duplicate_key(self):
        """Duplicate keys are rejected"""
        with pytest.raises(ItemExistsError):
            make_collection("a", "a")

    def test_missing_key(self):
        """Items without a key are rejected"""
        with pytest.raises(ValueError):
            OrderedCollection.from_iterable([Item(None)])

    def test_custom_key(self):
        """A callable key can replace the id attribute"""
        collection = OrderedCollection.from_iterable(["x", "y"], key=lambda value: value.upper())
        assert collection.ids == ["X", "Y"]
        assert collection["X"] == "x"

    def test_vehicles(self):
        """Vehicle snapshots are keyed by their ID"""
        collection = OrderedCollection.from_iterable([Vehicle("uav1", (0, 0)), Vehicle("uav2", (1, 0))])
        assert "uav2" in collection
        assert collection.first().id == "uav1"
        assert collection.last().id == "uav2"


class TestInsertion:
    """Test insertion operations"""

    def test_add_at_clamps_index(self):
        """Negative indices go to the front, large ones to the back"""
        collection = make_collection("b")
        collection.add_at(Item("a"), -3)
        collection.add_at(Item("z"), 99)
        collection.add_at(Item("m"), 1)
        assert collection.ids == ["a", "m", "b", "z"]
        assert collection.check_invariant()

    def test_add_front_and_back(self):
        """add_to_front / add_to_back"""
        collection = make_collection("m")
        collection.add_to_front(Item("a"))
        collection.add_to_back(Item("z"))
        assert collection.ids == ["a", "m", "z"]

    def test_add_existing_id(self):
        """Adding an existing ID fails unless explicitly tolerated"""
        collection = make_collection("a")
        with pytest.raises(ItemExistsError):
            collection.add_to_back(Item("a"))
        assert collection.add_unless_exists_at(Item("a"), 0) is None
        assert collection.ids == ["a"]

    def test_add_sorted(self):
        """Sorted insertion keeps a sorted collection sorted"""
        collection = make_collection("a", "c", "e")
        collection.add_sorted(Item("d"))
        collection.add_sorted(Item("b"))
        assert collection.ids == ["a", "b", "c", "d", "e"]
        assert collection.add_sorted_unless_exists(Item("c")) is None

    def test_add_sorted_natural_order(self):
        """Sorted insertion follows natural ID order like registry snapshots"""
        collection = OrderedCollection.from_iterable(
            [Vehicle("uav1", (0, 0)), Vehicle("uav2", (1, 0)), Vehicle("uav10", (2, 0))]
        )
        collection.add_sorted(Vehicle("uav7", (3, 4)))
        collection.add_sorted(Vehicle("uav11", (5, 5)))
        assert collection.ids == ["uav1", "uav2", "uav7", "uav10", "uav11"]
        assert collection.check_invariant()

    def test_placeholder_replaced_in_place(self):
        """A new item takes over from the placeholder entry in the order list"""
        collection = make_collection("a", NEW_ITEM_ID, "b")
        assert collection.ids == ["a", NEW_ITEM_ID, "b"]

        stored = collection.add_to_back(Item(NEW_ITEM_ID, name="drone"))
        assert stored.id == "drone"
        assert collection.ids == ["a", "b", "drone"]
        assert collection.check_invariant()
        assert [item.id for item in collection] == ["a", "b", "drone"]

    def test_id_generated_from_name(self):
        """Items without ID get one derived from their name"""
        collection = make_collection("drone")
        stored = collection.add_to_back(Item(NEW_ITEM_ID, name="drone"))
        assert stored.id == "drone_1"
        assert collection.ids == ["drone", "drone_1"]
        assert NEW_ITEM_ID not in collection

    def test_item_without_id_and_name(self):
        """Items with neither ID nor name are rejected"""
        with pytest.raises(ValueError):
            make_collection().add_to_back(Item(""))

    def test_replace_or_add(self):
        """Existing items are replaced in place, new ones inserted"""
        collection = make_collection("a", "c")
        collection.replace_or_add_sorted(Item("c", name="new"))
        collection.replace_or_add_sorted(Item("b"))
        collection.replace_or_add_to_front(Item("0"))
        assert collection.ids == ["0", "a", "b", "c"]
        assert collection["c"].name == "new"


class TestRemovalAndOrder:
    """Test deletion and reordering"""

    def test_delete(self):
        """delete removes one item; unknown IDs are ignored"""
        collection = make_collection("a", "b", "c")
        collection.delete("b")
        collection.delete("missing")
        assert collection.ids == ["a", "c"]
        assert collection.check_invariant()

    def test_delete_many(self):
        """Several items at once"""
        collection = make_collection("a", "b", "c", "d")
        collection.delete_many(["a", "c"])
        collection.maybe_delete_many(["d", "zzz"])
        assert collection.ids == ["b"]

    def test_clear(self):
        """clear empties the collection"""
        collection = make_collection("a", "b")
        collection.clear()
        assert len(collection) == 0
        assert collection.first() is None

    def test_reorder(self):
        """The new order must be a permutation"""
        collection = make_collection("a", "b", "c")
        collection.reorder(["c", "a", "b"])
        assert collection.ids == ["c", "a", "b"]
        with pytest.raises(ValueError):
            collection.reorder(["a", "b"])
        with pytest.raises(ValueError):
            collection.reorder(["a", "a", "b"])

    def test_natural_sort_order(self):
        """Embedded numbers are ordered numerically"""
        collection = make_collection("uav10", "uav2", "uav1")
        collection.ensure_natural_sort_order()
        assert collection.ids == ["uav1", "uav2", "uav10"]

    def test_copy_is_independent(self):
        """Changes to a copy do not affect the original"""
        collection = make_collection("a", "b")
        duplicate = collection.copy()
        duplicate.delete("a")
        assert collection.ids == ["a", "b"]


class TestHelpers:
    """Test module-level helpers"""

    def test_choose_unique_id(self):
        """Suffixes are appended until the ID is free"""
        assert choose_unique_id("uav", []) == "uav"
        assert choose_unique_id("uav", ["uav", "uav_1"]) == "uav_2"

    def test_natural_sort_key(self):
        """uav2 sorts before uav10"""
        assert sorted(["uav10", "uav2", "uav1"], key=natural_sort_key) == ["uav1", "uav2", "uav10"]
