"""
Protocol readers.

    file_reader: Delimited text files
    query_reader: SQL queries, streamed
    http_reader: Paginated JSON over HTTP
    soap_reader: SOAP 1.1/1.2 envelopes
"""
