"""Block ingestion pipeline.

This package fetches blocks from a chain node, normalizes them into
block, extrinsic and event records, and drives resumable ingest runs.
"""
