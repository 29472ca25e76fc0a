"""
Note board schema and column state machine.

Card lifecycle:
  Intake → InProgress → Done

Columns are fixed in number and order; a card lives in exactly one of them.
The serialized shape (``to_dict``) is the persisted layout and must round-trip.
"""
from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any


MAX_ITEMS = 5
DEFAULT_ITEM_COUNT = 3
DEFAULT_COLOR = "#ffffff"


class NoteBoardError(Exception):
    """Base class for note board errors."""
    pass


def utc_now() -> str:
    """ISO-8601 UTC timestamp."""
    return datetime.now(timezone.utc).isoformat()


class ColumnRole(Enum):
    """The three fixed columns, in board order. Value is the column title."""
    INTAKE = "Intake"
    IN_PROGRESS = "InProgress"
    DONE = "Done"

    @property
    def index(self) -> int:
        return list(ColumnRole).index(self)

    @property
    def capacity(self) -> Optional[int]:
        """Maximum number of cards, or None when unbounded."""
        return {
            ColumnRole.INTAKE: 3,
            ColumnRole.IN_PROGRESS: 5,
            ColumnRole.DONE: None,
        }[self]

    @property
    def next_role(self) -> Optional["ColumnRole"]:
        """The only legal forward transition. Done is terminal."""
        allowed_next = {
            ColumnRole.INTAKE: ColumnRole.IN_PROGRESS,
            ColumnRole.IN_PROGRESS: ColumnRole.DONE,
            ColumnRole.DONE: None,
        }
        return allowed_next[self]

    @classmethod
    def from_index(cls, index: int) -> "ColumnRole":
        roles = list(cls)
        if not 0 <= index < len(roles):
            raise IndexError(f"No column at index {index} (expected 0..{len(roles) - 1})")
        return roles[index]


@dataclass
class Item:
    """One checklist line inside a card."""
    text: str
    completed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "completed": self.completed}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Item":
        return cls(text=str(data.get("text", "")), completed=bool(data.get("completed", False)))


@dataclass
class Card:
    """A checklist-bearing note with a board-unique id."""

    id: int
    title: str
    color: str = DEFAULT_COLOR          # display hint only
    items: List[Item] = field(default_factory=list)
    completed_date: Optional[str] = None  # set once, on arrival in Done

    @property
    def completed_count(self) -> int:
        return sum(1 for item in self.items if item.completed)

    def completion_rate(self) -> Optional[float]:
        """Fraction of checked items, or None for a card with no items."""
        if not self.items:
            return None
        return self.completed_count / len(self.items)

    @property
    def is_complete(self) -> bool:
        return bool(self.items) and self.completed_count == len(self.items)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the persisted card layout."""
        return {
            "id": self.id,
            "title": self.title,
            "color": self.color,
            "items": [item.to_dict() for item in self.items],
            "completedDate": self.completed_date,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Card":
        """Deserialize a persisted card. Raises ValueError on an invalid shape."""
        card_id = data.get("id")
        # bool is an int subclass; a stored true/false is not an id
        if not isinstance(card_id, int) or isinstance(card_id, bool):
            raise ValueError(f"Card id must be an integer, got {card_id!r}")
        raw_items = data.get("items") or []
        if not isinstance(raw_items, list):
            raise ValueError(f"Card {card_id}: items must be a list")
        if len(raw_items) > MAX_ITEMS:
            raise ValueError(f"Card {card_id}: {len(raw_items)} items exceeds {MAX_ITEMS}")
        return cls(
            id=card_id,
            title=str(data.get("title", f"Card {card_id}")),
            color=str(data.get("color", DEFAULT_COLOR)),
            items=[Item.from_dict(raw) for raw in raw_items],
            completed_date=data.get("completedDate"),
        )


@dataclass
class Column:
    title: str
    cards: List[Card] = field(default_factory=list)

    def find(self, card_id: int) -> Optional[Card]:
        for card in self.cards:
            if card.id == card_id:
                return card
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {"title": self.title, "cards": [card.to_dict() for card in self.cards]}


@dataclass
class Board:
    """Root aggregate: the three columns plus the id counter."""

    columns: List[Column] = field(
        default_factory=lambda: [Column(title=role.value) for role in ColumnRole]
    )
    next_card_id: int = 1

    def column(self, role: ColumnRole) -> Column:
        return self.columns[role.index]

    def locate(self, card_id: int) -> Optional[tuple]:
        """Return (role, card) for the first card with this id, scanning in board order."""
        for role in ColumnRole:
            card = self.column(role).find(card_id)
            if card is not None:
                return role, card
        return None

    def all_cards(self) -> List[Card]:
        return [card for column in self.columns for card in column.cards]

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the persisted board layout."""
        return {
            "columns": [column.to_dict() for column in self.columns],
            "nextCardId": self.next_card_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Board":
        """
        Deserialize a persisted board.

        Raises ValueError when the record does not have exactly three columns,
        holds a duplicate card id, or a card fails to parse. The counter is
        raised above the highest stored id so ids are never reused.
        """
        if not isinstance(data, dict):
            raise ValueError("Board record must be an object")
        raw_columns = data.get("columns")
        roles = list(ColumnRole)
        if not isinstance(raw_columns, list) or len(raw_columns) != len(roles):
            raise ValueError(f"Board must have exactly {len(roles)} columns")

        columns: List[Column] = []
        seen: set = set()
        for role, raw in zip(roles, raw_columns):
            if not isinstance(raw, dict) or not isinstance(raw.get("cards", []), list):
                raise ValueError(f"Column {role.value} is malformed")
            cards = [Card.from_dict(c) for c in raw.get("cards", [])]
            for card in cards:
                if card.id in seen:
                    raise ValueError(f"Duplicate card id {card.id}")
                seen.add(card.id)
            columns.append(Column(title=str(raw.get("title") or role.value), cards=cards))

        next_card_id = data.get("nextCardId", 1)
        if not isinstance(next_card_id, int) or isinstance(next_card_id, bool):
            raise ValueError(f"nextCardId must be an integer, got {next_card_id!r}")
        if seen:
            next_card_id = max(next_card_id, max(seen) + 1)
        return cls(columns=columns, next_card_id=max(next_card_id, 1))
