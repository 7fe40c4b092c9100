"""Append-only log of opaque entries stored in memory-mapped segment files on disk."""