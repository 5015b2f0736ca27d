"""
Chunk writers.

    sql_writer: One parameterized statement executed for every record of a chunk
"""
