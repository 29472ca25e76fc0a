# Note board: three-column checklist cards with automatic forward movement
#
# Components:
#   schema.py      - Data model (Board, Column, Card, Item, ColumnRole)
#   board.py       - BoardStore: commands, auto-move rule, intake lock, events
#   persistence.py - PersistenceAdapter and key-value slot backends
#   config.py      - YAML/env configuration and logging setup
from .schema import Board, Card, Column, ColumnRole, Item, NoteBoardError
from .board import BoardStore, CapacityExceeded, ValidationRejected
from .persistence import (
    JsonFileSlot,
    MemorySlot,
    PersistenceAdapter,
    PersistenceUnavailable,
    SqliteSlot,
)
