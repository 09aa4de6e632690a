"""Rate limiting adapters.

The decision engine is split into a time source (``clock``), a storage
mapping (``ledger``) and the sliding-log limiter itself (``in_memory``), so
the HTTP layer only depends on the abstract interface in ``base``.
"""
