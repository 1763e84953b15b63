"""
objectgraph

Dynamic-schema object ingestion for organisational data: classify incoming
payloads against a configured object-type catalog, extract structured
records, link them into a parent/child and peer relationship graph, and
deduplicate them against what is already stored.
"""

__version__ = "0.1.0"
