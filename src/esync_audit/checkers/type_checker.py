"""Per-type document id reconciliation.

Only types whose counts differ are reconciled, since listing every id of
every type is the most expensive query either store answers.
"""

from __future__ import annotations

import structlog

from esync_audit.checkers.base import CheckerContext
from esync_audit.checkers.cardinality_checker import differing_type_counts
from esync_audit.domain.events import MissingEvent, TrailingEvent

logger = structlog.get_logger(__name__)


class TypeDocumentChecker:
    name = "TypeDocumentChecker"

    def check(self, context: CheckerContext) -> None:
        differing = differing_type_counts(
            context.source.get_type_cardinality(), context.index.get_type_cardinality()
        )
        if not differing:
            context.post_message("No document type to reconcile")
            return

        for doc_type in differing:
            context.raise_if_cancelled()
            source_ids = context.source.get_document_ids_for_type(doc_type)
            index_ids = context.index.get_document_ids_for_type(doc_type)
            missing = sorted(source_ids - index_ids)
            trailing = sorted(index_ids - source_ids)
            logger.info(
                "type_reconciled",
                checker=self.name,
                doc_type=doc_type,
                missing=len(missing),
                trailing=len(trailing),
            )
            for doc_id in missing:
                context.post(MissingEvent(doc_id, f"{doc_type} not found in index"))
            for doc_id in trailing:
                context.post(TrailingEvent(doc_id, f"{doc_type} not found in db"))


__all__ = ["TypeDocumentChecker"]
