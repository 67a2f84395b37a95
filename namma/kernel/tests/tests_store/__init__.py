"""
Document Store Test Suite

1. test_store_crud.py - insert / merge / remove, copies, notify-after-persist
2. test_store_round_trip.py - blob round trip, malformed blobs, failed writes
3. test_timestamp.py - Timestamp conversions and ordering
"""
