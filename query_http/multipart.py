"""Multipart framing for streamed (deferred) results.

Each chunk is already a serialized JSON document, so the single character
``-`` is a safe boundary. See RFC 1341 section 7.2 for the framing rules.
"""

from typing import Union

MULTIPART_CONTENT_TYPE = 'multipart/mixed; boundary="-"'
BOUNDARY = "\r\n---\r\n"
TERMINATING_BOUNDARY = "\r\n-----\r\n"
PART_CONTENT_TYPE = "Content-Type: application/json\r\n"


def byte_length(chunk: Union[str, bytes]) -> int:
    """UTF-8 byte length of a chunk, not its character count."""
    if isinstance(chunk, bytes):
        return len(chunk)
    return len(chunk.encode("utf-8"))


def encode_part(chunk: Union[str, bytes]) -> bytes:
    """Frame one chunk as a complete multipart part, leading boundary included."""
    data = chunk if isinstance(chunk, bytes) else chunk.encode("utf-8")
    header = f"{BOUNDARY}{PART_CONTENT_TYPE}Content-Length: {len(data)}\r\n\r\n"
    return header.encode("utf-8") + data


def encode_terminator() -> bytes:
    return TERMINATING_BOUNDARY.encode("utf-8")
