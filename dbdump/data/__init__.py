"""
Reading the export.

This package is responsible for:
* Streaming the archive and decoding only the tables a caller asked for.
* Turning CSV rows into typed records.
* Lazy id lookups over a fully loaded export.
"""
