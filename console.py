"""Console devices used by the TRAP subsystem.

A console is any object with read_unit / write_char / write_decimal / flush.
StreamConsole binds to real streams (stdin/stdout by default), ScriptedConsole
feeds canned input and captures output for tests.
"""

from __future__ import annotations

import logging
import sys
from typing import BinaryIO, Protocol, TextIO

from errors import InputExhausted


class Console(Protocol):
    def read_unit(self) -> int:
        """Block until one unit of input is available and return it."""
        ...

    def write_char(self, code: int) -> None: ...

    def write_decimal(self, value: int) -> None: ...

    def flush(self) -> None: ...


def _char_repr(code: int) -> str:
    return chr(code) if 32 <= code < 127 else f"\\x{code:02X}"


class StreamConsole:
    """Console over a binary input stream and a text output stream."""

    instream: BinaryIO
    outstream: TextIO

    def __init__(self, instream: BinaryIO | None = None, outstream: TextIO | None = None) -> None:
        self.instream = instream if instream is not None else sys.stdin.buffer
        self.outstream = outstream if outstream is not None else sys.stdout

    def read_unit(self) -> int:
        data = self.instream.read(1)
        if not data:
            raise InputExhausted("Input stream closed")
        logging.debug("[CONSOLE IN] read %d ('%s')", data[0], _char_repr(data[0]))
        return data[0]

    def write_char(self, code: int) -> None:
        # flush per character so prompts show up before the next blocking read
        self.outstream.write(chr(code & 0xFF))
        self.outstream.flush()

    def write_decimal(self, value: int) -> None:
        self.outstream.write(str(value))
        self.outstream.flush()

    def flush(self) -> None:
        self.outstream.flush()


class ScriptedConsole:
    """Console with scripted input and captured output."""

    input_buffer: list[int]
    output_buffer: list[str]

    def __init__(self, data: bytes | str | list[int] | None = None) -> None:
        if data is None:
            self.input_buffer = []
        elif isinstance(data, str):
            self.input_buffer = list(data.encode("utf-8"))
        else:
            self.input_buffer = [int(v) & 0xFFFF for v in data]
        self.output_buffer = []

    def feed(self, data: bytes | str | list[int]) -> None:
        """Append more input to the script."""
        if isinstance(data, str):
            self.input_buffer.extend(data.encode("utf-8"))
        else:
            self.input_buffer.extend(int(v) & 0xFFFF for v in data)

    def read_unit(self) -> int:
        if not self.input_buffer:
            raise InputExhausted("Scripted input exhausted")
        value = self.input_buffer.pop(0)
        logging.debug("[CONSOLE IN] consumed %d", value)
        return value

    def write_char(self, code: int) -> None:
        ch = chr(code & 0xFF)
        logging.debug("[CONSOLE OUT] wrote %d -> char: %s", code, _char_repr(code & 0xFF))
        self.output_buffer.append(ch)

    def write_decimal(self, value: int) -> None:
        logging.debug("[CONSOLE OUT] wrote decimal %d", value)
        self.output_buffer.append(str(value))

    def flush(self) -> None:
        pass

    @property
    def output(self) -> str:
        return "".join(self.output_buffer)
