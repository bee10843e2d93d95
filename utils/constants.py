from enum import auto, IntEnum

DECK_NAME_MAX = 50
CARD_SIDE_MAX = 1000

# Record ids in callback data: uuid hex, or whatever an import carried in
ID_PATTERN = r'[\w-]+'


class AddCardState(IntEnum):
    AWAITING_CONTENT = auto()


class DeckState(IntEnum):
    AWAITING_NAME = auto()
    RENAME_DECK = auto()


class ReviewState(IntEnum):
    DECK_PICKER = auto()
    SHOWING_FRONT = auto()
    RATING = auto()


class ManageState(IntEnum):
    EDIT_CARD_CONTENT = auto()
