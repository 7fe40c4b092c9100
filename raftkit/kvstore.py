"""A simple replicated key-value store built on the state machine contract.

Update commands are byte strings: one byte naming the command, then its
fields as length-prefixed strings. Reads take command objects directly.
Snapshots are a 32-bit count followed by key/value string pairs.
"""

from __future__ import annotations

import enum
import io
from dataclasses import dataclass
from typing import BinaryIO, Dict, Union

from raftkit.binary import read_string, read_uint32, write_string, write_uint32


class CmdType(enum.IntEnum):
    """The byte that opens an encoded update command."""

    SET = 0
    DEL = 1


@dataclass(frozen=True)
class SetCmd:
    """Store ``val`` under ``key``."""

    key: str
    val: str


@dataclass(frozen=True)
class GetCmd:
    """Read the value stored under ``key``."""

    key: str


@dataclass(frozen=True)
class DelCmd:
    """Remove ``key``."""

    key: str


Command = Union[SetCmd, DelCmd]


def encode_cmd(cmd: Command) -> bytes:
    """Encode an update command; only SetCmd and DelCmd can be encoded."""
    buf = io.BytesIO()
    if isinstance(cmd, SetCmd):
        buf.write(bytes([CmdType.SET]))
        write_string(buf, cmd.key)
        write_string(buf, cmd.val)
    elif isinstance(cmd, DelCmd):
        buf.write(bytes([CmdType.DEL]))
        write_string(buf, cmd.key)
    else:
        raise TypeError(f"encodeCmd: {type(cmd).__name__}")
    return buf.getvalue()


def decode_cmd(b: bytes) -> Command:
    """Decode a command written by :func:`encode_cmd`; raises ValueError."""
    if not b:
        raise ValueError("no data")
    r = io.BytesIO(bytes(b[1:]))
    try:
        if b[0] == CmdType.SET:
            key = read_string(r)
            return SetCmd(key, read_string(r))
        if b[0] == CmdType.DEL:
            return DelCmd(read_string(r))
    except EOFError as exc:
        raise ValueError(f"truncated command: {exc}") from None
    raise ValueError(f"unknown cmd: {b[0]}")


class KVState:
    """A point-in-time copy of the store, ready to be persisted."""

    def __init__(self, data: Dict[str, str]) -> None:
        self.data = data

    def persist(self, w: BinaryIO) -> None:
        """Write the captured entries to ``w``."""
        write_uint32(w, len(self.data))
        for key in sorted(self.data):
            write_string(w, key)
            write_string(w, self.data[key])

    def release(self) -> None:
        """Drop the captured copy once it is no longer needed."""
        self.data = {}


class KVStore:
    """A state machine mapping string keys to string values."""

    def __init__(self) -> None:
        self.data: Dict[str, str] = {}

    def update(self, b: bytes) -> object:
        """Apply an encoded command.

        Returns None on success; an undecodable or unknown command is
        returned as the exception describing it, leaving the store as is.
        """
        try:
            cmd = decode_cmd(b)
        except ValueError as exc:
            return exc
        if isinstance(cmd, SetCmd):
            self.data[cmd.key] = cmd.val
        else:
            self.data.pop(cmd.key, None)
        return None

    def read(self, cmd: object) -> object:
        """Answer a GetCmd with the stored value, or "" if the key is absent.

        Any other command is answered with a ValueError describing it.
        """
        if isinstance(cmd, GetCmd):
            return self.data.get(cmd.key, "")
        return ValueError(f"unknown cmd: {type(cmd).__name__}")

    def snapshot(self) -> KVState:
        return KVState(dict(self.data))

    def restore(self, r: BinaryIO) -> None:
        """Replace the contents with a persisted snapshot.

        On failure ValueError is raised and the store keeps its contents.
        """
        try:
            count = read_uint32(r)
            data = {}
            for _ in range(count):
                key = read_string(r)
                data[key] = read_string(r)
        except EOFError as exc:
            raise ValueError(f"truncated snapshot: {exc}") from None
        self.data = data