"""ACL consistency between the system-of-record and the index.

Three phases run in order:

A. every ACL-bearing source document is fetched from the index by id.
   Absent documents produce a ``MissingEvent`` and take no further part;
   a differing ACL produces a ``DiffEvent``. Index-only data (the path,
   display fields) is merged into the source document.
B. the merged documents are arranged into their path hierarchy.
C. the hierarchy is walked breadth-first. For every node the index is asked
   for documents under the node path, outside the subtrees of its children,
   whose ACL is not the node ACL: those documents did not inherit the ACL
   they should have.
"""

from __future__ import annotations

import structlog

from esync_audit.checkers.base import CheckerContext
from esync_audit.domain.documents import Document
from esync_audit.domain.errors import NotFoundError
from esync_audit.domain.events import DiffEvent, MissingEvent
from esync_audit.domain.tree import Node, build_tree, iter_breadth_first, render_tree

logger = structlog.get_logger(__name__)


class AclChecker:
    name = "AclChecker"

    def check(self, context: CheckerContext) -> None:
        documents = context.source.get_documents_with_acl()
        context.post_message(f"{len(documents)} documents hold an ACL")

        found = compare_with_index(documents, context)
        context.raise_if_cancelled()

        root = build_tree(found)
        logger.debug("acl_tree", checker=self.name, tree=render_tree(root))

        validate_inherited_acls(root, context)


def compare_with_index(documents: list[Document], context: CheckerContext) -> list[Document]:
    """Phase A. Returns the documents found in the index, merged with index data."""

    found: list[Document] = []
    for document in documents:
        context.raise_if_cancelled()
        try:
            indexed = context.index.get_document(document.id)
        except NotFoundError:
            context.post(MissingEvent(document.id, "not found in index"))
            continue
        if document != indexed:
            context.post(DiffEvent(document, indexed, "ACL diff found"))
        found.append(document.merged_with(indexed))
    return found


def validate_inherited_acls(root: Node, context: CheckerContext) -> None:
    """Phase C over every non-root node of ``root``."""

    for node in iter_breadth_first(root):
        context.raise_if_cancelled()
        document = node.document
        if document is None:
            continue
        if document.path is None:
            logger.warning("acl_document_without_path", checker=context.name, doc_id=document.id)
            continue

        invalid = context.index.get_docs_with_invalid_acl(
            document.acl, document.path, node.child_paths()
        )
        for indexed in invalid:
            expected = Document(id=indexed.id, acl=document.acl)
            context.post(DiffEvent(expected, indexed, "Invalid ACL found"))


__all__ = ["AclChecker", "compare_with_index", "validate_inherited_acls"]
