"""Versioned binary ticket codec.

WIRE LAYOUT (format version 3)
-------------------------------
  int32   version (3)
  string  authentication scheme
  int32   identity marker (1; reserved for other identity kinds)
  string  authentication type
  string* name claim type
  string* role claim type
  int32   claim count
  per claim:
    string* type             (default: the identity's name claim type)
    string  value            (never compressed)
    string* value type       (default: XMLSchema#string)
    string* issuer           (default: LOCAL AUTHORITY)
    string* original issuer  (default: the claim's own issuer)
  properties block (see PropertiesSerializer)

Integers are little-endian int32.  Strings are UTF-8 prefixed with their
byte length as a 7-bit varint.  Fields marked * go through the default
placeholder scheme: a value equal to its default is written as the
one-character sentinel "\\0" and restored to the default on read.

KNOWN AMBIGUITY
----------------
A real value that is exactly "\\0" reads back as the default.  This is
kept as-is so tokens stay readable by every deployed reader of format 3.
"""

from __future__ import annotations

import io
import struct

from authserver.tokens.ticket import (
    LOCAL_AUTHORITY,
    NAME_CLAIM_TYPE,
    ROLE_CLAIM_TYPE,
    STRING_VALUE_TYPE,
    AuthenticationProperties,
    AuthenticationTicket,
    Claim,
    ClaimsIdentity,
)

FORMAT_VERSION = 3
PROPERTIES_FORMAT_VERSION = 1
IDENTITY_MARKER = 1
DEFAULT_STRING_PLACEHOLDER = "\0"

_INT32 = struct.Struct("<i")


class TicketFormatError(ValueError):
    """Raised when bytes cannot be read as a ticket (truncated, garbled)."""


class BinaryWriter:
    def __init__(self, stream: io.BytesIO) -> None:
        self._stream = stream

    def write_int32(self, value: int) -> None:
        self._stream.write(_INT32.pack(value))

    def write_string(self, value: str) -> None:
        data = value.encode("utf-8")
        length = len(data)
        while length >= 0x80:
            self._stream.write(bytes([(length & 0x7F) | 0x80]))
            length >>= 7
        self._stream.write(bytes([length]))
        self._stream.write(data)

    def write_with_default(self, value: str, default: str) -> None:
        if value == default:
            self.write_string(DEFAULT_STRING_PLACEHOLDER)
        else:
            self.write_string(value)


class BinaryReader:
    def __init__(self, stream: io.BytesIO) -> None:
        self._stream = stream

    def _read_exact(self, size: int) -> bytes:
        data = self._stream.read(size)
        if len(data) != size:
            raise TicketFormatError("unexpected end of ticket data")
        return data

    def read_int32(self) -> int:
        return _INT32.unpack(self._read_exact(4))[0]

    def read_string(self) -> str:
        length = 0
        shift = 0
        while True:
            if shift > 28:
                raise TicketFormatError("string length prefix is too long")
            byte = self._read_exact(1)[0]
            length |= (byte & 0x7F) << shift
            shift += 7
            if not byte & 0x80:
                break
        try:
            return self._read_exact(length).decode("utf-8")
        except UnicodeDecodeError as e:
            raise TicketFormatError("ticket string is not valid UTF-8") from e

    def read_with_default(self, default: str) -> str:
        value = self.read_string()
        if value == DEFAULT_STRING_PLACEHOLDER:
            return default
        return value


class PropertiesSerializer:
    @staticmethod
    def write(writer: BinaryWriter, properties: AuthenticationProperties) -> None:
        writer.write_int32(PROPERTIES_FORMAT_VERSION)
        writer.write_int32(len(properties.items))
        for key, value in properties.items.items():
            writer.write_string(key)
            writer.write_string(value)

    @staticmethod
    def read(reader: BinaryReader) -> AuthenticationProperties | None:
        if reader.read_int32() != PROPERTIES_FORMAT_VERSION:
            return None
        count = reader.read_int32()
        if count < 0:
            raise TicketFormatError("negative property count")
        items: dict[str, str] = {}
        for _ in range(count):
            key = reader.read_string()
            items[key] = reader.read_string()
        return AuthenticationProperties(items)


class TicketSerializer:
    """Turns an AuthenticationTicket into bytes and back.

    ``deserialize`` returns None for data written under another format
    version; callers treat that exactly like an unknown token.  Damaged
    data raises TicketFormatError.
    """

    def serialize(self, ticket: AuthenticationTicket) -> bytes:
        stream = io.BytesIO()
        self.write(BinaryWriter(stream), ticket)
        return stream.getvalue()

    def deserialize(self, data: bytes) -> AuthenticationTicket | None:
        return self.read(BinaryReader(io.BytesIO(data)))

    @staticmethod
    def write(writer: BinaryWriter, ticket: AuthenticationTicket) -> None:
        identity = ticket.identity
        writer.write_int32(FORMAT_VERSION)
        writer.write_string(ticket.authentication_scheme or "")
        writer.write_int32(IDENTITY_MARKER)
        writer.write_string(identity.authentication_type or "")
        writer.write_with_default(identity.name_claim_type, NAME_CLAIM_TYPE)
        writer.write_with_default(identity.role_claim_type, ROLE_CLAIM_TYPE)
        writer.write_int32(len(identity.claims))
        for claim in identity.claims:
            writer.write_with_default(claim.type, identity.name_claim_type)
            writer.write_string(claim.value)
            writer.write_with_default(claim.value_type, STRING_VALUE_TYPE)
            writer.write_with_default(claim.issuer, LOCAL_AUTHORITY)
            writer.write_with_default(claim.original_issuer or claim.issuer, claim.issuer)
        PropertiesSerializer.write(writer, ticket.properties)

    @staticmethod
    def read(reader: BinaryReader) -> AuthenticationTicket | None:
        if reader.read_int32() != FORMAT_VERSION:
            return None
        authentication_scheme = reader.read_string()
        if reader.read_int32() != IDENTITY_MARKER:
            return None

        authentication_type = reader.read_string()
        name_claim_type = reader.read_with_default(NAME_CLAIM_TYPE)
        role_claim_type = reader.read_with_default(ROLE_CLAIM_TYPE)
        count = reader.read_int32()
        if count < 0:
            raise TicketFormatError("negative claim count")

        claims = []
        for _ in range(count):
            claim_type = reader.read_with_default(name_claim_type)
            value = reader.read_string()
            value_type = reader.read_with_default(STRING_VALUE_TYPE)
            issuer = reader.read_with_default(LOCAL_AUTHORITY)
            original_issuer = reader.read_with_default(issuer)
            claims.append(Claim(claim_type, value, value_type, issuer, original_issuer))

        identity = ClaimsIdentity(
            claims=tuple(claims),
            authentication_type=authentication_type,
            name_claim_type=name_claim_type,
            role_claim_type=role_claim_type,
        )
        properties = PropertiesSerializer.read(reader)
        if properties is None:
            return None
        return AuthenticationTicket(
            identity=identity,
            properties=properties,
            authentication_scheme=authentication_scheme,
        )
