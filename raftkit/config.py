"""Cluster membership: nodes, their pending actions and configurations."""

from __future__ import annotations

import dataclasses
import enum
import io
import json
import re
from dataclasses import dataclass, field
from typing import BinaryIO, Dict, Optional, Tuple

from raftkit.binary import (
    read_bool,
    read_string,
    read_uint8,
    read_uint32,
    read_uint64,
    write_bool,
    write_string,
    write_uint8,
    write_uint32,
    write_uint64,
)
from raftkit.errors import PlainError

_PORT_RE = re.compile(r"[+-]?[0-9]+")


class Action(enum.IntEnum):
    """The action the leader should take on a node when appropriate."""

    NONE = 0
    PROMOTE = 1
    DEMOTE = 2
    REMOVE = 3
    FORCE_REMOVE = 4

    @classmethod
    def _missing_(cls, value: object) -> Optional["Action"]:
        # values read off the wire are kept even when they name no action
        if isinstance(value, int) and 0 <= value <= 255:
            member = int.__new__(cls, value)
            member._name_ = f"Action({value})"
            member._value_ = value
            return member
        return None

    def __str__(self) -> str:
        return _ACTION_NAMES.get(int(self), f"Action({int(self)})")

    def __format__(self, spec: str) -> str:
        return format(str(self), spec)

    @classmethod
    def from_name(cls, name: str) -> "Action":
        """Return the action whose textual name is ``name``."""
        for action in cls:
            if str(action) == name:
                return action
        raise PlainError(f"{json.dumps(name)} is not a valid configAction")

    def to_json(self) -> str:
        """Encode the action as a JSON string."""
        return json.dumps(str(self))

    @classmethod
    def from_json(cls, data: "str | bytes") -> "Action":
        """Decode an action from JSON; ``null`` means no action."""
        if isinstance(data, (bytes, bytearray)):
            data = bytes(data).decode("utf-8")
        if data == "null":
            return cls.NONE
        if len(data) < 2 or data[0] != '"':
            raise PlainError("configAction must be json string")
        try:
            name = json.loads(data)
        except ValueError as exc:
            raise PlainError(str(exc)) from None
        if not isinstance(name, str):
            raise PlainError("configAction must be json string")
        return cls.from_name(name)


_ACTION_NAMES = {
    0: "none",
    1: "promote",
    2: "demote",
    3: "remove",
    4: "forceRemove",
}


def _split_host_port(hostport: str) -> Tuple[str, str]:
    """Split ``host:port`` the way network addresses are split for dialing."""

    def fail(reason: str) -> ValueError:
        return ValueError(f"address {hostport}: {reason}")

    i = hostport.rfind(":")
    if i < 0:
        raise fail("missing port in address")
    if hostport.startswith("["):
        end = hostport.find("]")
        if end < 0:
            raise fail("missing ']' in address")
        if end + 1 == len(hostport):
            raise fail("missing port in address")
        if end + 1 != i:
            if hostport[end + 1] == ":":
                raise fail("too many colons in address")
            raise fail("missing port in address")
        host = hostport[1:end]
        j, k = 1, end + 1
    else:
        host = hostport[:i]
        if ":" in host:
            raise fail("too many colons in address")
        j = k = 0
    if "[" in hostport[j:]:
        raise fail("unexpected '[' in address")
    if "]" in hostport[k:]:
        raise fail("unexpected ']' in address")
    return host, hostport[i + 1 :]


@dataclass(frozen=True)
class Node:
    """A single member of the cluster configuration."""

    id: int = 0
    addr: str = ""
    voter: bool = False
    data: str = ""
    action: Action = Action.NONE

    def next_action(self) -> Action:
        """The action the leader should carry out next for this node."""
        if self.action == Action.FORCE_REMOVE:
            return Action.FORCE_REMOVE
        if self.voter:
            if self.action in (Action.DEMOTE, Action.REMOVE):
                return Action.DEMOTE
            return Action.NONE
        if self.action in (Action.PROMOTE, Action.REMOVE):
            return self.action
        return Action.NONE

    def encode(self, w: BinaryIO) -> None:
        """Write the node in its binary form."""
        write_uint64(w, self.id)
        write_string(w, self.addr)
        write_bool(w, self.voter)
        write_string(w, self.data)
        write_uint8(w, int(self.action))

    @classmethod
    def decode(cls, r: BinaryIO) -> "Node":
        """Read a node written by :meth:`encode`."""
        nid = read_uint64(r)
        addr = read_string(r)
        voter = read_bool(r)
        data = read_string(r)
        action = Action(read_uint8(r))
        return cls(id=nid, addr=addr, voter=voter, data=data, action=action)

    def validate(self) -> None:
        """Raise PlainError if the node is not well formed."""
        if self.id == 0:
            raise PlainError("raft.Config: id must be greater than zero")
        if self.addr == "":
            raise PlainError("raft.Config: empty address")
        try:
            _, sport = _split_host_port(self.addr)
        except ValueError as exc:
            raise PlainError(
                f"raft.Config: invalid address {self.addr}: {exc}"
            ) from None
        if not _PORT_RE.fullmatch(sport):
            raise PlainError("raft.Config: port must be specified in address")
        if int(sport) <= 0:
            raise PlainError("raft.Config: invalid port")
        if self.action == Action.PROMOTE and self.voter:
            raise PlainError("raft.Config: voter can't be promoted")
        if self.action == Action.DEMOTE and not self.voter:
            raise PlainError("raft.Config: nonvoter can't be demoted")


@dataclass
class Config:
    """Which nodes are in the cluster, their votes and pending actions."""

    nodes: Dict[int, Node] = field(default_factory=dict)
    index: int = 0
    term: int = 0

    def is_bootstrapped(self) -> bool:
        return self.index > 0

    def is_stable(self) -> bool:
        """True if no node has a pending action."""
        return all(n.action == Action.NONE for n in self.nodes.values())

    def node_for_addr(self, addr: str) -> Optional[Node]:
        """Return the node with the given address, or None."""
        return next((n for n in self.nodes.values() if n.addr == addr), None)

    def is_voter(self, nid: int) -> bool:
        node = self.nodes.get(nid)
        return node is not None and node.voter

    def num_voters(self) -> int:
        return sum(1 for n in self.nodes.values() if n.voter)

    def quorum(self) -> int:
        return self.num_voters() // 2 + 1

    def add_voter(self, nid: int, addr: str) -> None:
        """Add a voter; only allowed before the config is bootstrapped."""
        if self.is_bootstrapped():
            raise PlainError(
                "raft.Config: voter cannot be added in bootstrapped config"
            )
        self._add_node(Node(id=nid, addr=addr, voter=True))

    def add_nonvoter(self, nid: int, addr: str, promote: bool) -> None:
        """Add a nonvoter, optionally marked for promotion once caught up."""
        action = Action.PROMOTE if promote else Action.NONE
        self._add_node(Node(id=nid, addr=addr, action=action))

    def _add_node(self, node: Node) -> None:
        node.validate()
        if node.id in self.nodes:
            raise PlainError(f"raft.Config: node {node.id} already exists")
        self.nodes[node.id] = node

    def _existing(self, nid: int) -> Node:
        try:
            return self.nodes[nid]
        except KeyError:
            raise PlainError(f"raft.Config: node {nid} not found") from None

    def set_action(self, nid: int, action: Action) -> None:
        node = dataclasses.replace(self._existing(nid), action=action)
        node.validate()
        self.nodes[nid] = node

    def set_addr(self, nid: int, addr: str) -> None:
        node = dataclasses.replace(self._existing(nid), addr=addr)
        node.validate()
        other = self.node_for_addr(addr)
        if other is not None and other.id != nid:
            raise PlainError(
                f"raft.Config: address {addr} is used by node {other.id}"
            )
        self.nodes[nid] = node

    def set_data(self, nid: int, data: str) -> None:
        self.nodes[nid] = dataclasses.replace(self._existing(nid), data=data)

    def clone(self) -> "Config":
        return Config(dict(self.nodes), self.index, self.term)

    def encode_nodes(self) -> bytes:
        """Encode the nodes as the payload of a config log entry."""
        buf = io.BytesIO()
        write_uint32(buf, len(self.nodes))
        for nid in sorted(self.nodes):
            self.nodes[nid].encode(buf)
        return buf.getvalue()

    @classmethod
    def decode_nodes(cls, data: bytes, index: int, term: int) -> "Config":
        """Build a config from an entry payload written by :meth:`encode_nodes`."""
        r = io.BytesIO(data)
        count = read_uint32(r)
        nodes: Dict[int, Node] = {}
        for _ in range(count):
            node = Node.decode(r)
            nodes[node.id] = node
        return cls(nodes, index, term)

    def validate(self) -> None:
        """Raise PlainError if the configuration is inconsistent."""
        addrs = set()
        for nid, node in self.nodes.items():
            node.validate()
            if nid != node.id:
                raise PlainError(f"raft.Config: id mismatch for node {node.id}")
            if node.addr in addrs:
                raise PlainError(f"raft.Config: duplicate address {node.addr}")
            addrs.add(node.addr)
        if self.num_voters() == 0:
            raise PlainError("raft.Config: zero voters")

    def __str__(self) -> str:
        voters, nonvoters = [], []
        for nid in sorted(self.nodes):
            node = self.nodes[nid]
            s = f"{node.id},{node.addr}"
            if node.action != Action.NONE:
                s = f"{s},{node.action}"
            (voters if node.voter else nonvoters).append(s)
        return (
            f"Config{{index: {self.index}, voters: [{' '.join(voters)}], "
            f"nonvoters: [{' '.join(nonvoters)}]}}"
        )


@dataclass
class Configs:
    """The committed and the latest configuration."""

    committed: Config = field(default_factory=Config)
    latest: Config = field(default_factory=Config)

    def clone(self) -> "Configs":
        return Configs(self.committed.clone(), self.latest.clone())

    def is_bootstrapped(self) -> bool:
        return self.latest.is_bootstrapped()

    def is_committed(self) -> bool:
        return self.latest.index == self.committed.index

    def is_stable(self) -> bool:
        """True if the latest config is committed and has no pending actions."""
        return self.is_committed() and self.latest.is_stable()