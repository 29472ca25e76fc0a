"""
BoardStore: owns the live board and applies every mutation to it.

Each command validates, mutates in memory, runs the auto-move rule where the
checklist changed, persists the new snapshot and notifies subscribers, in that
order. Persistence is best-effort: a failed save is logged and reported but
never rolls back the in-memory change.
"""
import copy
import logging
from typing import Optional, Dict, Any, Callable, List

from .schema import (
    Board,
    Card,
    ColumnRole,
    Item,
    DEFAULT_COLOR,
    DEFAULT_ITEM_COUNT,
    MAX_ITEMS,
    NoteBoardError,
    utc_now,
)
from .persistence import PersistenceAdapter, PersistenceUnavailable

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("title", "color")
PROMOTE_THRESHOLD = 0.5  # strictly more than half checked leaves Intake


class CapacityExceeded(NoteBoardError):
    """Raised when a column cannot accept another card."""

    def __init__(self, role: ColumnRole, limit: int, reason: str = ""):
        self.role = role
        self.limit = limit
        super().__init__(reason or f"Column {role.value} is full ({limit} cards)")


class ValidationRejected(NoteBoardError):
    """Input refused by a permissive form rule. Never surfaced as a hard error."""
    pass


class BoardStore:
    """In-memory board plus the rules that govern it."""

    def __init__(
        self,
        adapter: PersistenceAdapter,
        board: Optional[Board] = None,
        default_color: str = DEFAULT_COLOR,
        clock: Callable[[], str] = utc_now,
    ):
        self.adapter = adapter
        self.board = board if board is not None else Board()
        self.default_color = default_color
        self.clock = clock
        self.last_persistence_error: Optional[PersistenceUnavailable] = None
        self.subscribers: Dict[str, List[Callable]] = {}  # event_type -> callbacks

    @classmethod
    def open(cls, adapter: PersistenceAdapter, **kwargs) -> "BoardStore":
        """Load the saved board (or a fresh one) and wrap it."""
        return cls(adapter, board=adapter.load(), **kwargs)

    # ──────────────────────────────────────────
    # Observers
    # ──────────────────────────────────────────

    def subscribe(self, event_type: str, callback: Callable) -> None:
        """Register a callback for an event type."""
        self.subscribers.setdefault(event_type, []).append(callback)

    def unsubscribe(self, event_type: str, callback: Callable) -> None:
        callbacks = self.subscribers.get(event_type, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def _emit(self, event_type: str, **kwargs) -> None:
        """Emit an event to all subscribers."""
        for callback in list(self.subscribers.get(event_type, [])):
            try:
                callback(**kwargs)
            except Exception:
                logger.exception(f"Error in {event_type} callback {callback!r}")

    # ──────────────────────────────────────────
    # Queries
    # ──────────────────────────────────────────

    @property
    def is_intake_locked(self) -> bool:
        """Intake refuses new cards while InProgress is full."""
        in_progress = self.board.column(ColumnRole.IN_PROGRESS)
        return len(in_progress.cards) >= ColumnRole.IN_PROGRESS.capacity

    @property
    def persisted(self) -> bool:
        """False when the most recent save failed."""
        return self.last_persistence_error is None

    def get_card(self, card_id: int) -> Optional[Card]:
        found = self.board.locate(card_id)
        return found[1] if found else None

    def role_of(self, card_id: int) -> Optional[ColumnRole]:
        found = self.board.locate(card_id)
        return found[0] if found else None

    def snapshot(self) -> Dict[str, Any]:
        """Read-only copy of the board in persisted layout, plus the lock hint."""
        data = copy.deepcopy(self.board.to_dict())
        data["isIntakeLocked"] = self.is_intake_locked
        return data

    def can_add_card(self, column_index: int) -> bool:
        try:
            self._check_capacity(ColumnRole.from_index(column_index))
        except CapacityExceeded:
            return False
        return True

    # ──────────────────────────────────────────
    # Commands
    # ──────────────────────────────────────────

    def add_card(self, column_index: int) -> Card:
        """
        Create a card with three blank items in the given column.

        Raises CapacityExceeded when the column is full, or when it is Intake
        and Intake is locked. Raises IndexError for an unknown column.
        """
        role = ColumnRole.from_index(column_index)
        self._check_capacity(role)

        card_id = self.board.next_card_id
        self.board.next_card_id += 1
        card = Card(
            id=card_id,
            title=f"Card {card_id}",
            color=self.default_color,
            items=[Item(text="") for _ in range(DEFAULT_ITEM_COUNT)],
        )
        self.board.column(role).cards.append(card)
        logger.info(f"Added card {card_id} to {role.value}")
        self._commit()
        return card

    def remove_card(self, card_id: int) -> bool:
        """Remove the first card with this id. Unknown ids are a no-op."""
        for role in ColumnRole:
            column = self.board.column(role)
            for index, card in enumerate(column.cards):
                if card.id == card_id:
                    del column.cards[index]
                    logger.info(f"Removed card {card_id} from {role.value}")
                    self._commit()
                    return True
        logger.debug(f"remove_card: card {card_id} not found")
        return False

    def add_item(self, card_id: int, text: str) -> bool:
        """Append an unchecked item. Blank text or a full checklist is ignored."""
        card = self._find(card_id, "add_item")
        if card is None:
            return False
        try:
            self._check_new_item(card, text)
        except ValidationRejected as e:
            logger.debug(f"add_item on card {card_id} ignored: {e}")
            return False
        card.items.append(Item(text=text))
        self._update_card(card)
        self._commit()
        return True

    def set_item_completed(self, card_id: int, item_index: int, completed: bool) -> bool:
        """Check or uncheck one item, then re-evaluate the card's column."""
        card = self._find(card_id, "set_item_completed")
        if card is None or not self._valid_item_index(card, item_index):
            return False
        card.items[item_index].completed = bool(completed)
        self._update_card(card)
        self._commit()
        return True

    def edit_item_text(self, card_id: int, item_index: int, text: str) -> bool:
        """Replace an item's text. Does not affect completion or movement."""
        card = self._find(card_id, "edit_item_text")
        if card is None or not self._valid_item_index(card, item_index):
            return False
        card.items[item_index].text = text
        self._commit()
        return True

    def edit_card_field(self, card_id: int, field: str, value: str) -> bool:
        """Set a card's title or color. Does not affect completion or movement."""
        if field not in EDITABLE_FIELDS:
            raise ValueError(f"Field must be one of {EDITABLE_FIELDS}, got {field!r}")
        card = self._find(card_id, "edit_card_field")
        if card is None:
            return False
        setattr(card, field, value)
        self._commit()
        return True

    # ──────────────────────────────────────────
    # Rules
    # ──────────────────────────────────────────

    def _check_capacity(self, role: ColumnRole) -> None:
        column = self.board.column(role)
        if role.capacity is not None and len(column.cards) >= role.capacity:
            raise CapacityExceeded(role, role.capacity)
        if role is ColumnRole.INTAKE and self.is_intake_locked:
            limit = ColumnRole.IN_PROGRESS.capacity
            raise CapacityExceeded(
                role, limit, f"Intake is locked while {ColumnRole.IN_PROGRESS.value} is full ({limit} cards)"
            )

    @staticmethod
    def _check_new_item(card: Card, text: str) -> None:
        if not text or not text.strip():
            raise ValidationRejected("item text is empty")
        if len(card.items) >= MAX_ITEMS:
            raise ValidationRejected(f"card already has {MAX_ITEMS} items")

    def _update_card(self, card: Card) -> None:
        """
        Auto-move rule. At most one forward transition per evaluation:

        - Intake → InProgress when more than half the items are checked and
          InProgress has room;
        - InProgress → Done when every item is checked, stamping completed_date.

        Cards without items are never evaluated; Done is terminal.
        """
        rate = card.completion_rate()
        if rate is None:
            return
        role = self.role_of(card.id)
        if role is ColumnRole.INTAKE and rate > PROMOTE_THRESHOLD:
            target = ColumnRole.IN_PROGRESS
            if len(self.board.column(target).cards) >= target.capacity:
                logger.info(f"Card {card.id} stays in {role.value}: {target.value} is full")
                return
            self._move(card, role, target)
        elif role is ColumnRole.IN_PROGRESS and rate == 1.0:
            self._move(card, role, ColumnRole.DONE)
            if card.completed_date is None:
                card.completed_date = self.clock()

    def _move(self, card: Card, source: ColumnRole, target: ColumnRole) -> None:
        if source.next_role is not target:
            raise ValueError(f"Illegal transition {source.value} → {target.value}")
        self.board.column(source).cards.remove(card)
        self.board.column(target).cards.append(card)
        logger.info(f"Moved card {card.id}: {source.value} → {target.value}")
        self._emit("card_moved", card_id=card.id, from_role=source, to_role=target)

    # ──────────────────────────────────────────
    # Helpers
    # ──────────────────────────────────────────

    def _find(self, card_id: int, op: str) -> Optional[Card]:
        card = self.get_card(card_id)
        if card is None:
            logger.warning(f"{op}: card {card_id} not found")
        return card

    @staticmethod
    def _valid_item_index(card: Card, item_index: int) -> bool:
        if 0 <= item_index < len(card.items):
            return True
        logger.warning(f"Card {card.id} has no item #{item_index}")
        return False

    def _commit(self) -> None:
        """Persist the current board and notify subscribers."""
        try:
            self.adapter.save(self.board)
        except PersistenceUnavailable as e:
            self.last_persistence_error = e
            logger.error(f"Failed to persist board: {e}")
            self._emit("persistence_failed", error=e)
        else:
            self.last_persistence_error = None
        self._emit("state_changed", snapshot=self.snapshot())

    def __str__(self) -> str:
        return ", ".join(
            f"{role.value}: {len(self.board.column(role).cards)} cards" for role in ColumnRole
        )
