"""
Chair Booking Tests

Running Tests:
    # Unit tests (SQLite via aiosqlite, fake Redis, mocked outbound channel)
    pytest tests/unit -v

    # One module
    pytest tests/unit/test_ledger.py -v
"""
