"""
Game Boy Library Containers
===========================

Container format for assembled code plus its exported labels.

>>> from gb_sdk.obj import Library
>>> lib = Library.from_code(b"\\x00\\x76", {"start": 0})
>>> Library.read(lib.write()).symbols
{'start': 0}
"""

from gb_sdk.obj.library import (
    LIBRARY_VERSION,
    MAGIC,
    Library,
    Section,
    Text,
)

__all__ = [
    "Library",
    "Section",
    "Text",
    "MAGIC",
    "LIBRARY_VERSION",
]
