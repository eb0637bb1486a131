"""
Error taxonomy for the mission-slot assignment engine and geofence generator.

All failures are detected synchronously and raised as typed exceptions. The
calling layer (see scheduler.py) turns them into a single discriminated
outcome so that no partial mapping or polygon is ever written.

Hierarchy:
    ShowConsoleError
        InvalidCostMatrixError      - negative, non-finite or ragged cost matrix
        InvalidMappingError         - duplicate vehicle IDs in a mapping
            InvalidMappingLengthError - mapping length != slot count
        DegenerateGeometryError     - fewer than 3 distinct boundary points
        InvalidSettingsError        - geofence settings out of range
        InvalidSnapshotError        - malformed vehicle / slot / point snapshot
        ItemExistsError             - duplicate ID in an ordered collection
        StaleComputationError       - result of a superseded request (internal)
"""


class ShowConsoleError(Exception):
    """Base class of all errors raised by the console core"""


class InvalidCostMatrixError(ShowConsoleError, ValueError):
    """Cost matrix is not rectangular, not finite or has negative entries"""


class InvalidMappingError(ShowConsoleError, ValueError):
    """Mapping violates the one-vehicle-per-slot invariant"""


class InvalidMappingLengthError(InvalidMappingError):
    """Mapping length does not match the number of mission slots"""

    def __init__(self, mapping_length: int, slot_count: int):
        super().__init__(
            f"Mapping has {mapping_length} entries but the mission has "
            f"{slot_count} slots"
        )
        self.mapping_length = mapping_length
        self.slot_count = slot_count


class DegenerateGeometryError(ShowConsoleError):
    """Point set does not span a polygon (fewer than 3 distinct points)"""


class InvalidSettingsError(ShowConsoleError, ValueError):
    """Geofence generation settings are out of range"""


class InvalidSnapshotError(ShowConsoleError, ValueError):
    """Vehicle, slot or position snapshot failed validation"""


class ItemExistsError(ShowConsoleError, ValueError):
    """An item with the same ID already exists in the collection"""

    def __init__(self, item_id: str):
        super().__init__(f"An item with ID {item_id!r} already exists")
        self.item_id = item_id


class StaleComputationError(ShowConsoleError):
    """Result belongs to a request that has since been superseded"""

    def __init__(self, sequence: int, latest: int):
        super().__init__(
            f"Computation #{sequence} superseded by request #{latest}"
        )
        self.sequence = sequence
        self.latest = latest
