"""HTTP transport helpers for the Milvue REST API."""
