# raftkit

Building blocks for a Raft consensus cluster. The package has no dependencies outside the standard library.

- `raftkit.binary` – little-endian encoding over file-like objects. It covers unsigned integers (`read_uint64`, `write_uint32`, `read_uint8`, ...), booleans, and byte strings and strings with a 32-bit length prefix (`read_bytes`, `write_string`, ...). A stream that ends early raises `EOFError`. A value out of range raises `ValueError`.
- `raftkit.errors` – the error types:
  - `RaftError` is the base class. Errors compare equal by type and content.
  - The others are `PlainError`, `TemporaryError`, `NotLeaderError`, `InProgressError`, `TimeoutError_`, `OpError`, `IdentityError` and `Bug`.
  - `op_error` builds an `OpError` from a format string. `is_temporary` tells whether an operation may be retried.
  - The module also defines well-known error values such as `ERR_STALE_CONFIG`, `ERR_NO_UPDATES` and `ERR_NOT_COMMIT_READY`.
- `raftkit.config` – cluster membership:
  - `Node`, `Config` and `Configs` (committed and latest).
  - The `Action` a leader takes on a node: `NONE`, `PROMOTE`, `DEMOTE`, `REMOVE`, `FORCE_REMOVE`. Actions have JSON helpers `to_json` and `from_json`.
- `raftkit.round` – `Round`, which times how long a nonvoter takes to catch up to a given log index.
- `raftkit.wal.log` – a segmented, append-only log on disk (`Log`, `Options`), with read-only views. It raises `NotFoundError` and `ExceedsSegmentSizeError`.
- `raftkit.wal.segment` – the memory-mapped segment files the log is made of (`Segment`, `segment_file`, `list_segments`, `open_segments`).
- `raftkit.kvstore` – a small key/value state machine (`KVStore`) that takes encoded `SetCmd` and `DelCmd` updates and `GetCmd` reads, with snapshots (`KVState`) and restore.

## Install

```
pip install .
```

## Cluster configuration

```python
from raftkit.config import Action, Config

config = Config()
config.add_voter(1, "localhost:7001")
config.add_voter(2, "localhost:7002")
config.validate()
print(config.quorum())  # 2

config.set_action(2, Action.DEMOTE)
print(config.is_stable())  # False
```

Invalid changes raise `PlainError`. Examples are:

- an address without a port;
- a node id that already exists;
- promoting a voter;
- adding a voter to a config that is already bootstrapped (index greater than 0).

`Config.encode_nodes` and `Config.decode_nodes` convert the node set to and from the binary payload of a config entry.

## Write-ahead log

```python
from raftkit.wal.log import Log, Options

with Log.open("data/log", 0o700, Options(file_mode=0o600, segment_size=16 * 1024 * 1024)) as log:
    log.append(b"hello-world")
    log.commit()
    print(log.get(1))           # b'hello-world'
    print(log.last_index())     # 1
```

How the log is stored:

- Segment files are named after the index that comes before their first entry (`0.log`, `121.log`, ...).
- Each segment is pre-allocated to `segment_size` bytes, and `segment_size` must be at least 1024. An entry larger than a segment grows the size of the next segment. The exception is an entry too large for an empty segment, which raises `ExceedsSegmentSizeError`.
- A segment holds its entries at the start of the file and the entry offsets and an entry count at the end.
- `commit` writes the count, so entries appended after the last commit may be lost if the process crashes. `remove_lte`, `remove_gte` and `close` commit implicitly.

Reading entries:

- `get(i)` returns one entry.
- `get_n(i, n)` returns the entries as one byte string per segment.
- Reading an index at or before `prev_index()` raises `NotFoundError`. Reading past `last_index()` raises `IndexError`.

Trimming the log:

- `remove_gte(i)` drops everything from `i` on.
- `remove_lte(i)` drops whole segments only. `can_lte(i)` tells how far it would actually go.
- `reset(i)` discards everything and continues after index `i`.

Views:

- `view()` and `view_at(prev, last)` return read-only bounded views that another thread may read while one writer appends.
- `view_at` returns `None` if the bounds fall outside the log.

## Key/value state machine

```python
import io
from raftkit.kvstore import KVStore, SetCmd, GetCmd, encode_cmd

store = KVStore()
store.update(encode_cmd(SetCmd("k1", "v1")))
print(store.read(GetCmd("k1")))  # v1

buf = io.BytesIO()
store.snapshot().persist(buf)
restored = KVStore()
restored.restore(io.BytesIO(buf.getvalue()))
```

How failures are reported:

- `update` returns the error for a command it cannot decode instead of raising it.
- `read` returns `""` for a missing key.
- `restore` raises `ValueError` on a truncated snapshot and leaves the store unchanged.

## What this package does not do

raftkit provides the data structures and storage of a Raft node, not a running node:

- There is no leader election, log replication or networking.
- There is no server and no admin client.
- There is no snapshot storage beyond `KVState.persist` writing to a stream you supply.
- There is no command-line tool.

Wiring these pieces into a cluster is left to the application.

## Tests

```
pip install .[test]
pytest
```