"""
Type Classification

Resolves which configured object type a payload belongs to. An explicit
type hint is trusted as-is; otherwise the oracle picks among the
organisation's standard types and its answer is checked against them.
"""

from typing import Any
import logging

from ...core.errors import ClassificationError
from ...core.session import IngestionSession
from ..intelligence.oracle import Oracle

logger = logging.getLogger(__name__)


class TypeClassifier:
    """Chooses exactly one object type id per payload."""

    def __init__(self, oracle: Oracle):
        self._oracle = oracle

    def classify(self, session: IngestionSession, payload: Any) -> str:
        """
        Return the object type id for ``payload``.

        Raises:
            ClassificationError: unknown hint, oracle failure, or an answer
                outside the candidate set
        """
        hint = session.hints.object_type_id
        if hint:
            if session.catalog.get_object_type(hint) is None:
                raise ClassificationError(f"Object type '{hint}' does not exist")
            return hint

        candidates = session.compiled.candidate_descriptions()
        if not candidates:
            raise ClassificationError("No object types available for classification")

        try:
            predicted = self._oracle.classify(candidates, payload)
        except Exception as e:
            raise ClassificationError(f"Unable to classify data: {e}") from e

        if predicted not in candidates:
            raise ClassificationError(
                f"Predicted object type '{predicted}' is not one of: {', '.join(candidates)}"
            )

        logger.info("Classified item as %s", predicted)
        return predicted
