"""Service API: typed records, request descriptors and the accumulation engine."""
