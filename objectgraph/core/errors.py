"""
Error taxonomy of the ingestion pipeline.

Failures before the per-item loop (organisation or catalog resolution) abort
the whole call. Classification, extraction, merge and storage failures abort
only the current item. Parent resolution failures are logged and the item
proceeds without a parent.
"""

from typing import List


class IngestionError(Exception):
    """Base class for all ingestion errors."""


class OrganisationResolutionError(IngestionError):
    """The organisation (or its catalog) could not be resolved."""


class ClassificationError(IngestionError):
    """No valid object type could be determined for a payload."""


class ExtractionError(IngestionError):
    """The oracle did not produce metadata conforming to the type's schema."""


class ParentResolutionError(IngestionError):
    """Choosing a parent record failed. Non-fatal."""


class MergeError(IngestionError):
    """Semantic merge of an existing and a new record failed."""


class StorageError(IngestionError):
    """A storage engine round-trip failed."""


class OracleError(IngestionError):
    """The oracle call itself failed or returned an unusable shape."""


class PartialBatchFailure(IngestionError):
    """One or more items of a batch failed."""

    def __init__(self, failures: List[str], succeeded: int = 0):
        self.failures = list(failures)
        self.succeeded = succeeded
        super().__init__(
            f"{len(self.failures)} item(s) failed, {succeeded} succeeded:\n"
            + "\n".join(self.failures)
        )
