import re

CODE_LENGTH = 6
DIGITS = re.compile(r"[0-9]+")


class IncompleteCodeError(ValueError):
    code = "incomplete_code"

    def __init__(self, message: str = "Please enter all 6 digits"):
        self.message = message
        super().__init__(message)


class CodeInput:
    """
    Six single-digit slots with a focus cursor, fed by discrete keystrokes
    or a paste.

    Mirrors how a row of one-character inputs behaves: a digit advances the
    focus, backspace on an empty slot steps back without deleting, arrows
    only move the focus, and a paste fills from the first slot.
    """

    def __init__(self, length: int = CODE_LENGTH):
        self.length = length
        self.slots = [""] * length
        self.focus = 0

    def enter(self, index: int, char: str) -> bool:
        """Type into slot `index`. Returns False, leaving everything untouched, for anything but one digit."""
        if not (0 <= index < self.length) or len(char) != 1 or not DIGITS.fullmatch(char):
            return False
        self.slots[index] = char
        self.focus = index + 1 if index < self.length - 1 else index
        return True

    def type(self, char: str) -> bool:
        return self.enter(self.focus, char)

    def backspace(self):
        if self.slots[self.focus]:
            self.slots[self.focus] = ""
        elif self.focus > 0:
            self.focus -= 1

    def move_left(self):
        if self.focus > 0:
            self.focus -= 1

    def move_right(self):
        if self.focus < self.length - 1:
            self.focus += 1

    def paste(self, text: str) -> bool:
        """Fill from slot 0 with a digits-only paste; mixed content is rejected outright."""
        text = text.strip()
        if not DIGITS.fullmatch(text):
            return False
        text = text[: self.length]
        self.slots = list(text) + [""] * (self.length - len(text))
        self.focus = len(text) - 1
        return True

    def clear(self):
        self.slots = [""] * self.length
        self.focus = 0

    @property
    def is_complete(self) -> bool:
        return all(self.slots)

    def code(self) -> str:
        if not self.is_complete:
            raise IncompleteCodeError()
        return "".join(self.slots)

    def __repr__(self) -> str:
        return f"<CodeInput(slots={self.slots!r}, focus={self.focus})>"
