from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple, Union

# WhatsApp Cloud interactive limits
MAX_BUTTONS = 3
MAX_BUTTON_TITLE = 20
MAX_LIST_ROWS = 10
MAX_ROW_TITLE = 24


@dataclass(frozen=True)
class TextReply:
    text: str


@dataclass(frozen=True)
class ButtonsReply:
    text: str
    buttons: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        # Accept lists from callers, keep the value hashable
        object.__setattr__(self, "buttons", tuple(self.buttons)[:MAX_BUTTONS])


@dataclass(frozen=True)
class ListRow:
    id: str
    title: str
    description: str = ""


@dataclass(frozen=True)
class ListReply:
    text: str
    button: str = "Ver opciones"
    rows: Tuple[ListRow, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "rows", tuple(self.rows)[:MAX_LIST_ROWS])


Reply = Union[TextReply, ButtonsReply, ListReply]
