#!/usr/bin/env python3
"""
objectgraph - Main Demo

Runs the ingestion engine end to end against a seeded in-memory store:
1. Dry run of a feedback payload (preview only, nothing stored)
2. Real run: classification, extraction, parent resolution, storage,
   relationship propagation and post-store analysis (signal creation)
3. Re-ingestion of near-identical data with a match threshold (dedup + merge)
4. A batch with one bad item (per-item failure isolation)

By default the deterministic MockOracle is used so the demo runs offline.
Pass --llm to use the configured LangChain chat and embedding models instead.
"""

import argparse
import json
import sys

from objectgraph.config import get_settings
from objectgraph.layers.intelligence import LangChainOracle, MockOracle
from objectgraph.layers.orchestration import IngestionRequest, IngestionService
from objectgraph.layers.storage import InMemoryStorageEngine, LangChainEmbeddingGenerator
from objectgraph.observability import configure_logging


ORGANISATION_ID = "org1"


def seed_storage(storage: InMemoryStorageEngine) -> None:
    """Seed a small catalog and a couple of records."""
    storage.seed("organisations", [{"id": ORGANISATION_ID, "name": "Demo Org"}])

    storage.seed("field_types", [
        {"id": "string", "name": "String", "data_type": "string"},
        {"id": "number", "name": "Number", "data_type": "number"},
        {"id": "string_array", "name": "String array", "data_type": "string", "is_array": True},
    ])

    storage.seed("dictionary_terms", [
        {"id": "low", "type": "severity", "description": "Minor inconvenience"},
        {"id": "medium", "type": "severity", "description": "Noticeable impact"},
        {"id": "high", "type": "severity", "description": "Blocks the user"},
    ])

    storage.seed("object_types", [
        {"id": "product", "name": "Product", "category": "organisation_data_standard",
         "description": "An item sold by the organisation"},
        {"id": "feature", "name": "Feature", "category": "organisation_data_standard",
         "description": "A feature of a product", "parent_object_type_id": "product"},
        {"id": "feedback", "name": "Feedback", "category": "organisation_data_standard",
         "description": "Feedback from users about a product, service or experience"},
        {"id": "signal", "name": "Signal", "category": "organisation_data_special",
         "description": "An insight derived from the organisation's data"},
        {"id": "job", "name": "Job", "category": "organisation_data_special",
         "description": "Work that needs to be done"},
    ])

    storage.seed("object_metadata_types", [
        {"id": "title", "name": "Title", "description": "Short title", "field_type_id": "string",
         "is_required": True, "related_object_type_id": None},
        {"id": "severity", "name": "Severity", "field_type_id": "string",
         "dictionary_term_type": "severity", "related_object_type_id": "feedback"},
        {"id": "tags", "name": "Tags", "field_type_id": "string_array", "related_object_type_id": "feedback"},
        {"id": "internal_notes", "name": "Internal notes", "field_type_id": "string",
         "allow_ai_update": False, "related_object_type_id": "feedback"},
        {"id": "price", "name": "Price", "field_type_id": "number", "max_value": 10000,
         "related_object_type_id": "product"},
        {"id": "trigger_message", "name": "Trigger message", "field_type_id": "string",
         "is_required": True, "related_object_type_id": "signal"},
        {"id": "relevant_data", "name": "Relevant data", "field_type_id": "string",
         "related_object_type_id": "signal"},
        {"id": "description", "name": "Description", "field_type_id": "string",
         "related_object_type_id": "job"},
    ])

    storage.seed("objects", [
        {"id": "product-1", "owner_organisation_id": ORGANISATION_ID, "related_object_type_id": "product",
         "metadata": {"title": "Mobile banking app", "price": 0}, "related_ids": {}, "child_ids": {}},
    ])


def build_service(use_llm: bool):
    config = get_settings().ingestion
    storage = InMemoryStorageEngine(LangChainEmbeddingGenerator() if use_llm else None, config)
    seed_storage(storage)
    oracle = LangChainOracle() if use_llm else MockOracle()
    return storage, IngestionService(storage, oracle, config)


def print_response(title: str, response: dict) -> None:
    print(title)
    print("-" * 40)
    print(json.dumps(response, indent=2, default=str))
    print()


def run_demo(use_llm: bool) -> None:
    storage, service = build_service(use_llm)

    print("=" * 60)
    print("1. DRY RUN")
    print("=" * 60)
    print()
    response = service.handle({
        "connectionId": "demo",
        "organisationId": ORGANISATION_ID,
        "dryRun": True,
        "payload": {"title": "Login fails", "severity": "high"},
        "hints": {"objectTypeId": "feedback"},
    })
    print_response("Preview of feedback record:", response)

    print("=" * 60)
    print("2. REAL RUN")
    print("=" * 60)
    print()
    response = service.handle({
        "connectionId": "demo",
        "organisationId": ORGANISATION_ID,
        "payload": {"title": "Login fails on the mobile app", "severity": "high", "tags": ["login"]},
        "hints": {"objectTypeId": "feedback", "newRelatedIds": {"product": ["product-1"]}},
    })
    print_response("Stored feedback:", response)

    print("=" * 60)
    print("3. DEDUP AND MERGE")
    print("=" * 60)
    print()
    response = service.handle({
        "connectionId": "demo",
        "organisationId": ORGANISATION_ID,
        "payload": {"title": "Login fails on the mobile app", "severity": "high", "tags": ["ios"]},
        "hints": {"objectTypeId": "feedback", "requiredMatchThreshold": 0.8},
    })
    print_response("Merged feedback:", response)

    print("=" * 60)
    print("4. PARTIAL FAILURE")
    print("=" * 60)
    print()
    response = service.handle({
        "connectionId": "demo",
        "organisationId": ORGANISATION_ID,
        "payload": {"companyDataContents": [{"title": "App crashes", "severity": "critical"}, {"title": "Checkout is slow"}]},
        "hints": {"objectTypeId": "feedback"},
    })
    print_response("Batch with one invalid item:", response)

    print("=" * 60)
    print("STORED OBJECTS")
    print("=" * 60)
    print()
    for row in storage.rows("objects"):
        print(f"  [{row['related_object_type_id']}] {row['id']}: {row['metadata'].get('title') or row['metadata']}")
        for type_id, ids in row.get("related_ids", {}).items():
            print(f"      related {type_id}: {', '.join(ids)}")
    print()


def run_file(path: str, organisation_id: str, connection_id: str, dry_run: bool, use_llm: bool) -> int:
    """Ingest a JSON payload file against the demo catalog."""
    with open(path) as f:
        payload = json.load(f)

    _, service = build_service(use_llm)
    request = IngestionRequest(
        connection_id=connection_id,
        organisation_id=organisation_id,
        dry_run=dry_run,
        payload=payload
    )
    response = service.ingest(request).to_response()
    print(json.dumps(response, indent=2, default=str))
    return 0 if response["status"] == 200 else 1


def main(argv=None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="objectgraph ingestion demo")
    parser.add_argument("payload", nargs="?", help="JSON payload file to ingest instead of the demo")
    parser.add_argument("--organisation", default=ORGANISATION_ID)
    parser.add_argument("--connection", default="demo")
    parser.add_argument("--dry-run", action="store_true")
    parser.add_argument("--llm", action="store_true", help="use the configured LangChain chat and embedding models")
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args(argv)

    configure_logging(args.log_level)

    if args.payload:
        return run_file(args.payload, args.organisation, args.connection, args.dry_run, args.llm)

    print()
    print("+" + "=" * 58 + "+")
    print("|            OBJECTGRAPH INGESTION DEMONSTRATION           |")
    print("+" + "=" * 58 + "+")
    print()
    run_demo(args.llm)
    return 0


if __name__ == "__main__":
    sys.exit(main())
