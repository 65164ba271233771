"""
Library Container Format
========================

A library packages one assembled unit of code together with the addresses of
its labels, so other tools can locate entry points without re-assembling.

File Layout
-----------
All integers are little-endian. Strings are UTF-8.

```
Field            Encoding
---------------  ----------------------------------------------
magic            string: u64 length + bytes, always "GB-O!"
version          string: u64 length + bytes, e.g. "1.0.0"
section.text.bin blob:   u64 length + code bytes
section.text.sym map:    u64 count, then per entry (sorted by name):
                           string  symbol name
                           u16     address
```

The file ends right after the last map entry; trailing bytes are an error.

Example
-------
>>> text = Text(b"\\x10\\x10\\x10")
>>> text.add_symbol("_start", 0x01)
>>> data = Library(Section(text)).write()
>>> Library.read(data).section.text.code
b'\\x10\\x10\\x10'
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Union
import logging
import struct

from gb_sdk.errors import ObjectFormatError

logger = logging.getLogger(__name__)

# Container identification
MAGIC = "GB-O!"
LIBRARY_VERSION = "1.0.0"

_U64 = struct.Struct("<Q")
_U16 = struct.Struct("<H")


# =============================================================================
# Data Structures
# =============================================================================

@dataclass
class Text:
    """
    The code part of a section.

    Attributes:
        code: Machine code bytes
        symbols: Symbol name -> address within code
    """
    code: bytes
    symbols: dict[str, int] = field(default_factory=dict)

    def add_symbol(self, name: str, address: int) -> None:
        """
        Record a symbol's address, replacing any previous entry.

        Raises:
            ValueError: If the address does not fit in 16 bits
        """
        if not 0 <= address <= 0xFFFF:
            raise ValueError(f"address of '{name}' must be in 0..$FFFF, got {address}")
        self.symbols[name] = address


@dataclass
class Section:
    """Section area of a library; currently a single text part."""
    text: Text


@dataclass
class Library:
    """
    A library container.

    Attributes:
        section: The code and its symbols
        magic: Identification string, always MAGIC for valid files
        version: Version of the format writer
    """
    section: Section
    magic: str = MAGIC
    version: str = LIBRARY_VERSION

    @classmethod
    def from_code(cls, code: bytes, symbols: dict[str, int] | None = None) -> "Library":
        """Build a library from machine code and exported symbols."""
        text = Text(bytes(code))
        for name, address in (symbols or {}).items():
            text.add_symbol(name, address)
        return cls(Section(text))

    @property
    def code(self) -> bytes:
        return self.section.text.code

    @property
    def symbols(self) -> dict[str, int]:
        return self.section.text.symbols

    # =========================================================================
    # Serialization
    # =========================================================================

    def write(self) -> bytes:
        """Serialize the library to bytes."""
        text = self.section.text
        parts = [
            _pack_string(self.magic),
            _pack_string(self.version),
            _pack_blob(text.code),
            _U64.pack(len(text.symbols)),
        ]
        for name in sorted(text.symbols):
            parts.append(_pack_string(name))
            parts.append(_U16.pack(text.symbols[name]))

        data = b"".join(parts)
        logger.debug(
            f"Serialized library: {len(text.code)} code bytes, "
            f"{len(text.symbols)} symbols, {len(data)} bytes total"
        )
        return data

    @classmethod
    def read(cls, data: bytes) -> "Library":
        """
        Parse a library from bytes.

        Raises:
            ObjectFormatError: If the magic is wrong or the data is truncated,
                               malformed or followed by trailing bytes
        """
        reader = _Reader(data)

        magic = reader.string("magic")
        if magic != MAGIC:
            raise ObjectFormatError(f"not a library: bad magic {magic!r}")
        version = reader.string("version")

        text = Text(reader.blob("code"))
        count = reader.u64("symbol count")
        for _ in range(count):
            name = reader.string("symbol name")
            text.symbols[name] = reader.u16("symbol address")
        reader.finish()

        logger.debug(f"Read library v{version}: {len(text.code)} code bytes, {count} symbols")
        return cls(Section(text), magic, version)

    @classmethod
    def from_file(cls, filepath: Union[str, Path]) -> "Library":
        """Read a library from a file."""
        return cls.read(Path(filepath).read_bytes())

    def to_file(self, filepath: Union[str, Path]) -> int:
        """
        Write the library to a file.

        Returns:
            Number of bytes written
        """
        data = self.write()
        Path(filepath).write_bytes(data)
        logger.debug(f"Wrote library to {filepath}")
        return len(data)


# =============================================================================
# Encoding Helpers
# =============================================================================

def _pack_blob(data: bytes) -> bytes:
    return _U64.pack(len(data)) + data


def _pack_string(value: str) -> bytes:
    return _pack_blob(value.encode("utf-8"))


class _Reader:
    """Sequential reader that reports truncation as ObjectFormatError."""

    def __init__(self, data: bytes):
        self._data = data
        self._pos = 0

    def _take(self, size: int, what: str) -> bytes:
        end = self._pos + size
        if end > len(self._data):
            raise ObjectFormatError(
                f"truncated library: {what} needs {size} bytes at offset {self._pos}, "
                f"only {len(self._data) - self._pos} left"
            )
        chunk = self._data[self._pos:end]
        self._pos = end
        return chunk

    def u64(self, what: str) -> int:
        return _U64.unpack(self._take(_U64.size, what))[0]

    def u16(self, what: str) -> int:
        return _U16.unpack(self._take(_U16.size, what))[0]

    def blob(self, what: str) -> bytes:
        return self._take(self.u64(f"{what} length"), what)

    def string(self, what: str) -> str:
        raw = self.blob(what)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ObjectFormatError(f"invalid {what}: not UTF-8") from e

    def finish(self) -> None:
        if self._pos != len(self._data):
            raise ObjectFormatError(
                f"{len(self._data) - self._pos} trailing bytes after library data"
            )
