"""Building blocks for Raft consensus: binary encoding, errors, cluster configuration, catch-up rounds, a write-ahead log and a key/value state machine."""

__version__ = "0.1.0"