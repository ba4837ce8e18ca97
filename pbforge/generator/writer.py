"""Output accumulator for generated source."""

from collections.abc import Iterator
from contextlib import contextmanager


class CodeWriter:
    """Collects generated lines, tracking indentation.

    One writer is created per generation run and passed down to every
    emitter, so runs never share state.
    """

    def __init__(self, indent: str = "    "):
        self._lines: list[str] = []
        self._indent = indent
        self._level = 0

    def line(self, text: str = "") -> None:
        if text:
            self._lines.append(self._indent * self._level + text)
        else:
            self._lines.append("")

    @contextmanager
    def indented(self) -> Iterator[None]:
        self._level += 1
        try:
            yield
        finally:
            self._level -= 1

    @contextmanager
    def block(self, header: str) -> Iterator[None]:
        """Write ``header`` (e.g. ``def f():``) and indent what follows."""
        self.line(header)
        with self.indented():
            yield

    def getvalue(self) -> str:
        return "\n".join(self._lines) + "\n"
