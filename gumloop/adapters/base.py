"""Common line handling for output adapters."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Iterator, Union

from gumloop.adapters.events import EventSink
from gumloop.errors import OutputReadError

Line = Union[bytes, str]


class OutputAdapter(ABC):
    """Convert an agent's raw output stream into normalized events.

    ``process`` reads ``stream`` line by line until it is exhausted and hands
    each decoded line to :meth:`handle_line`. A failed read is raised as
    :class:`~gumloop.errors.OutputReadError` and nothing further is emitted.
    Adapters never own the sink; whoever passes it in decides when the
    channel behind it is closed.
    """

    label = "agent"

    def process(self, stream: Iterable[Line], emit: EventSink) -> None:
        for line in self._read_lines(stream):
            self.handle_line(line, emit)

    @abstractmethod
    def handle_line(self, line: str, emit: EventSink) -> None:
        """Emit the events found in a single line of output."""

    def _read_lines(self, stream: Iterable[Line]) -> Iterator[str]:
        iterator = iter(stream)
        while True:
            try:
                raw = next(iterator)
            except StopIteration:
                return
            except (OSError, ValueError) as exc:
                raise OutputReadError(f"error reading {self.label} output: {exc}") from exc
            yield _decode(raw)


def _decode(raw: Line) -> str:
    if isinstance(raw, bytes):
        text = raw.decode("utf-8", errors="replace")
    else:
        text = raw
    if text.endswith("\n"):
        text = text[:-1]
    if text.endswith("\r"):
        text = text[:-1]
    return text


__all__ = ["OutputAdapter"]
