"""
Barcode scan coordination core.

Resolves scanned barcodes into product records while keeping concurrent
and repeated scans of the same barcode from doing duplicate work.

Structure:
- domain/: Value objects, domain models, ports and errors
- infrastructure/: Cache, batching, catalog client, persistence, event bus
- application/: Scan pipeline and the services it coordinates
- tests/: Test suite
"""

__version__ = "1.0.0"
