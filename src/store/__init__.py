"""Persistent store layer.

This module persists blocks, extrinsics, events and scan progress behind
one async interface with MongoDB, SQLite and in-memory backends.
"""
