"""
Processing layers of the ingestion engine.

- schema: catalog compilation into prompt descriptions and extraction schemas
- intelligence: the classification/extraction oracle
- data_ingestion: per-item pipeline components
- storage: the row store contract
- orchestration: batch sequencing and post-store analysis
"""
