"""`/start` deep-link commands and their compact binary codec.

Telegram limits the `start` parameter to 64 characters from `[A-Za-z0-9_-]`,
so the command is serialized with a small subset of the protobuf wire format
and then encoded as URL-safe base64 without padding:

- field 3 (length-delimited): subscription `{1: sfixed64 query_hash, 2: varint action}`
- field 4 (length-delimited, empty): manage subscriptions

The query text is never embedded; it is looked up by hash when the command
is executed.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
import struct
from typing import Iterator, Tuple, Union
from urllib.parse import quote, urlencode

from core.errors import CommandDecodeError

_SUBSCRIPTION_FIELD = 3
_MANAGE_FIELD = 4
_QUERY_HASH_FIELD = 1
_ACTION_FIELD = 2

_ACTION_NONE = 0
_ACTION_SUBSCRIBE = 1
_ACTION_UNSUBSCRIBE = 2

_WIRE_VARINT = 0
_WIRE_FIXED64 = 1
_WIRE_LENGTH_DELIMITED = 2
_WIRE_FIXED32 = 5


@dataclass(frozen=True)
class NoCommand:
    """Payload without any actionable command."""


@dataclass(frozen=True)
class SubscribeCommand:
    query_hash: int


@dataclass(frozen=True)
class UnsubscribeCommand:
    query_hash: int


@dataclass(frozen=True)
class ManageCommand:
    """List the chat's subscriptions."""


Command = Union[NoCommand, SubscribeCommand, UnsubscribeCommand, ManageCommand]


def _encode_varint(value: int) -> bytes:
    if value < 0:
        raise ValueError("varint must be non-negative")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _key(field_number: int, wire_type: int) -> bytes:
    return _encode_varint((field_number << 3) | wire_type)


def _length_delimited(field_number: int, body: bytes) -> bytes:
    return _key(field_number, _WIRE_LENGTH_DELIMITED) + _encode_varint(len(body)) + body


def _subscription(query_hash: int, action: int) -> bytes:
    body = _key(_QUERY_HASH_FIELD, _WIRE_FIXED64) + struct.pack("<q", query_hash)
    body += _key(_ACTION_FIELD, _WIRE_VARINT) + _encode_varint(action)
    return _length_delimited(_SUBSCRIPTION_FIELD, body)


def encode_binary(command: Command) -> bytes:
    """Serialize a command into its binary form."""

    if isinstance(command, SubscribeCommand):
        return _subscription(command.query_hash, _ACTION_SUBSCRIBE)
    if isinstance(command, UnsubscribeCommand):
        return _subscription(command.query_hash, _ACTION_UNSUBSCRIBE)
    if isinstance(command, ManageCommand):
        return _length_delimited(_MANAGE_FIELD, b"")
    if isinstance(command, NoCommand):
        return b""
    raise TypeError(f"Unsupported command: {command!r}")


def _read_varint(data: bytes, offset: int) -> Tuple[int, int]:
    result = 0
    shift = 0
    while True:
        if offset >= len(data):
            raise CommandDecodeError("truncated varint")
        byte = data[offset]
        offset += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result, offset
        shift += 7
        if shift >= 64:
            raise CommandDecodeError("varint is too long")


def _iter_fields(data: bytes) -> Iterator[Tuple[int, int, Union[int, bytes]]]:
    """Yield `(field_number, wire_type, value)`; fixed64 values stay raw bytes."""

    offset = 0
    while offset < len(data):
        key, offset = _read_varint(data, offset)
        field_number, wire_type = key >> 3, key & 0x07
        if field_number == 0:
            raise CommandDecodeError("invalid field number 0")
        if wire_type == _WIRE_VARINT:
            value, offset = _read_varint(data, offset)
        elif wire_type in (_WIRE_FIXED64, _WIRE_FIXED32):
            size = 8 if wire_type == _WIRE_FIXED64 else 4
            if offset + size > len(data):
                raise CommandDecodeError("truncated fixed-width field")
            value = data[offset : offset + size]
            offset += size
        elif wire_type == _WIRE_LENGTH_DELIMITED:
            length, offset = _read_varint(data, offset)
            if offset + length > len(data):
                raise CommandDecodeError("truncated length-delimited field")
            value = data[offset : offset + length]
            offset += length
        else:
            raise CommandDecodeError(f"unsupported wire type {wire_type}")
        yield field_number, wire_type, value


def _decode_subscription(body: bytes) -> Command:
    query_hash = 0
    action = _ACTION_NONE
    for field_number, wire_type, value in _iter_fields(body):
        if field_number == _QUERY_HASH_FIELD and wire_type == _WIRE_FIXED64:
            (query_hash,) = struct.unpack("<q", value)
        elif field_number == _ACTION_FIELD and wire_type == _WIRE_VARINT:
            action = value
    if action == _ACTION_SUBSCRIBE:
        return SubscribeCommand(query_hash=query_hash)
    if action == _ACTION_UNSUBSCRIBE:
        return UnsubscribeCommand(query_hash=query_hash)
    if action == _ACTION_NONE:
        return NoCommand()
    raise CommandDecodeError(f"unknown subscription action {action}")


def decode_binary(data: bytes) -> Command:
    """Parse the binary form; unknown fields are skipped."""

    command: Command = NoCommand()
    for field_number, wire_type, value in _iter_fields(data):
        if wire_type != _WIRE_LENGTH_DELIMITED:
            continue
        if field_number == _SUBSCRIPTION_FIELD:
            command = _decode_subscription(value)
        elif field_number == _MANAGE_FIELD:
            command = ManageCommand()
    return command


def encode(command: Command) -> str:
    """Serialize a command into an unpadded URL-safe base64 string."""

    return base64.urlsafe_b64encode(encode_binary(command)).rstrip(b"=").decode("ascii")


def decode(payload: str) -> Command:
    """Reverse `encode`. Raises CommandDecodeError for malformed payloads."""

    text = payload.strip()
    padded = text + "=" * (-len(text) % 4)
    try:
        data = base64.b64decode(padded.encode("ascii"), altchars=b"-_", validate=True)
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise CommandDecodeError(f"invalid base64 payload: {payload!r}") from exc
    return decode_binary(data)


@dataclass(frozen=True)
class CommandLink:
    """Rendered link text plus the deep-link URL."""

    text: str
    url: str


class DeepLinkBuilder:
    """Build `https://t.me/<bot>?start=<payload>` links."""

    def __init__(self, bot_username: str, host: str = "t.me") -> None:
        self._base_url = f"https://{host}/{quote(bot_username)}"

    @property
    def base_url(self) -> str:
        return self._base_url

    def link(self, text: str, command: Command) -> CommandLink:
        return CommandLink(text=text, url=f"{self._base_url}?{urlencode({'start': encode(command)})}")

    def subscribe_link(self, query_hash: int) -> CommandLink:
        return self.link("Subscribe", SubscribeCommand(query_hash))

    def resubscribe_link(self, query_hash: int) -> CommandLink:
        return self.link("Re-subscribe", SubscribeCommand(query_hash))

    def unsubscribe_link(self, query_hash: int) -> CommandLink:
        return self.link("Unsubscribe", UnsubscribeCommand(query_hash))

    def manage_link(self) -> CommandLink:
        return self.link("Manage subscriptions", ManageCommand())
