"""Errors raised by raftkit and the well-known error values."""

from __future__ import annotations

from typing import Any, Optional


class RaftError(Exception):
    """Base class of all raft errors; errors compare equal by type and content."""

    def _key(self) -> tuple:
        return self.args

    def __eq__(self, other: object) -> bool:
        if type(self) is not type(other):
            return NotImplemented
        return self._key() == other._key()  # type: ignore[attr-defined]

    def __ne__(self, other: object) -> bool:
        result = self.__eq__(other)
        if result is NotImplemented:
            return True
        return not result

    def __hash__(self) -> int:
        return hash((type(self), self._key()))


class PlainError(RaftError):
    """An error identified only by its message."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class TemporaryError(RaftError):
    """An error after which the operation may be retried later."""

    temporary = True

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InProgressError(TemporaryError):
    """The request cannot be served now because another one is in progress."""

    def __init__(self, task: str) -> None:
        super().__init__(f"raft: another {task} in progress")
        self.task = task

    def _key(self) -> tuple:
        return (self.task,)


class TimeoutError_(TemporaryError):
    """A task did not complete in time; ``task`` names the task."""

    def __init__(self, task: str) -> None:
        super().__init__(f"raft: {task} timeout")
        self.task = task

    def _key(self) -> tuple:
        return (self.task,)


class NotLeaderError(RaftError):
    """Raised by a node that is not, or is no longer, the leader.

    ``leader`` describes the known leader (an object with ``id`` and ``addr``)
    or is None when the leader is unknown. ``lost`` is True if the node lost
    its leadership before completing the request.
    """

    def __init__(self, leader: Optional[Any] = None, lost: bool = False) -> None:
        self.leader = leader
        self.lost = lost
        super().__init__(self._message())

    def _message(self) -> str:
        contact = ""
        if self.leader is not None and getattr(self.leader, "id", 0) != 0:
            contact = f", contact node {self.leader.id} at {self.leader.addr}"
        if self.lost:
            return "raft: lost leadership" + contact
        return "raft: this node is not the leader" + contact

    @property
    def leader_id(self) -> int:
        """ID of the known leader, or 0 when unknown."""
        if self.leader is None:
            return 0
        return getattr(self.leader, "id", 0)

    def _key(self) -> tuple:
        return (self.leader, self.lost)

    def __hash__(self) -> int:
        return hash((type(self), self.leader_id, self.lost))


class OpError(RaftError):
    """An error from the storage or state-machine layer that needs attention."""

    def __init__(self, op: str, err: BaseException) -> None:
        super().__init__(f"raft: {op}: {err}")
        self.op = op
        self.err = err

    def _key(self) -> tuple:
        return (self.op, self.err)


class IdentityError(RaftError):
    """The server at an address does not have the expected cluster/node ids."""

    def __init__(self, cluster: int, node: int, addr: str) -> None:
        super().__init__(
            f"raft: identity of server at {addr} is not cid={cluster} nid={node}"
        )
        self.cluster = cluster
        self.node = node
        self.addr = addr

    def _key(self) -> tuple:
        return (self.cluster, self.node, self.addr)


class Bug(RaftError):
    """An internal inconsistency that should never happen."""

    def __init__(self, msg: str, err: BaseException) -> None:
        super().__init__(f"raft-bug: {msg}: {err}")
        self.msg = msg
        self.err = err

    def _key(self) -> tuple:
        return (self.msg, self.err)


def op_error(err: BaseException, fmt: str, *args: Any) -> OpError:
    """Build an OpError whose operation name is ``fmt % args``."""
    op = fmt % args if args else fmt
    return OpError(op, err)


def is_temporary(err: BaseException) -> bool:
    """Tell whether the error is temporary and the operation may be retried."""
    return bool(getattr(err, "temporary", False))


ERR_LOCK_EXISTS = PlainError("raft: lock file exists in storageDir")
ERR_SERVER_CLOSED = PlainError("raft: server closed")
ERR_NODE_REMOVED = PlainError("raft: node removed")
ERR_IDENTITY_ALREADY_SET = PlainError("raft: identity already set")
ERR_IDENTITY_NOT_SET = PlainError("raft: identity not set")
ERR_FAULTY_FOLLOWER = PlainError("raft: faulty follower, denies matchIndex")
ERR_NOT_COMMIT_READY = TemporaryError("raft.configChange: not ready to commit")
ERR_STALE_CONFIG = PlainError("raft.changeConfig: submitted config is stale")
ERR_SNAPSHOT_THRESHOLD = PlainError(
    "raft.takeSnapshot: not enough outstanding logs to snapshot"
)
ERR_NO_UPDATES = PlainError("raft.takeSnapshot: no updates since last snapshot")
ERR_QUORUM_UNREACHABLE = PlainError("raft: quorum unreachable")
ERR_TRANSFER_NO_VOTER = PlainError(
    "raft.transferLeadership: no other voter to transfer"
)
ERR_TRANSFER_SELF = PlainError("raft.transferLeadership: target is already leader")
ERR_TRANSFER_TARGET_NONVOTER = PlainError(
    "raft.transferLeadership: target is nonvoter"
)
ERR_TRANSFER_INVALID_TARGET = PlainError(
    "raft.transferLeadership: no such target found"
)

ERR_ASSERTION = PlainError("raft: assertion failed")
ERR_UNREACHABLE = PlainError("raft: unreachable")
ERR_INVALID_TASK = PlainError("raft: invalid task")
ERR_STOP = PlainError("raft: got stop signal")