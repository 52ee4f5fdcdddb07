"""
Persistence layer

Plain functions over an open sqlite3 connection, one module per table group.
Callers own the transaction (see DatabaseConnection.write_transaction).
"""
