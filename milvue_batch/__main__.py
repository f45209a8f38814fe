"""Allow ``python -m milvue_batch`` to behave like ``milvue-batch``."""

from milvue_batch.cli import main

if __name__ == "__main__":  # pragma: no cover
    main()
