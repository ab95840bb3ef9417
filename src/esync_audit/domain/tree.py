"""Path hierarchy reconstruction for ACL-bearing documents.

Only documents that carry an explicit ACL take part, so the tree is small
compared to the whole repository. Parent lookup scans every placed node,
which is quadratic in the number of documents.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from esync_audit.domain.documents import Document, is_under, sort_by_path
from esync_audit.domain.errors import MalformedDataError


@dataclass(slots=True, eq=False)
class Node:
    """Tree node wrapping a document; the synthetic root has no document."""

    document: Document | None
    children: list[Node] = field(default_factory=list)

    @property
    def is_root(self) -> bool:
        return self.document is None

    @property
    def path(self) -> str | None:
        return None if self.document is None else self.document.path

    def add_child(self, child: Node) -> None:
        if child.is_root:
            raise ValueError("the synthetic root cannot be attached as a child")
        self.children.append(child)

    def child_paths(self) -> tuple[str, ...]:
        return tuple(child.path for child in self.children if child.path is not None)


def build_tree(documents: Iterable[Document]) -> Node:
    """Build the hierarchy of ``documents`` under a synthetic root.

    Documents are placed in ascending path order. Under that order an
    ancestor never sorts after its descendants, so when a document is placed
    every candidate parent is already in the tree. The parent is the placed
    node with the longest path that is an ancestor of the document path on a
    segment boundary: ``/a/bc`` is a child of ``/a``, not of ``/a/b``.

    Documents without a path are attached to the root and are never parents.
    Two documents sharing a path violate the uniqueness precondition and
    raise ``MalformedDataError``.
    """

    root = Node(document=None)
    placed: list[Node] = []
    seen_paths: set[str] = set()

    for document in sort_by_path(documents):
        node = Node(document=document)
        path = document.path
        if path is None:
            root.add_child(node)
            continue
        if path in seen_paths:
            raise MalformedDataError(f"duplicate document path {path!r} (id {document.id!r})")
        seen_paths.add(path)

        parent: Node | None = None
        for candidate in placed:
            candidate_path = candidate.path
            if candidate_path is None or not is_under(path, candidate_path):
                continue
            if parent is None or len(candidate_path) > len(parent.path or ""):
                parent = candidate

        (parent if parent is not None else root).add_child(node)
        placed.append(node)

    return root


def iter_breadth_first(root: Node) -> Iterator[Node]:
    """Yield every non-root node exactly once, level by level."""

    queue: deque[Node] = deque(root.children)
    while queue:
        node = queue.popleft()
        yield node
        queue.extend(node.children)


def render_tree(root: Node, *, indent: str = "  ") -> str:
    lines: list[str] = []

    def visit(node: Node, depth: int) -> None:
        if node.is_root:
            lines.append("ROOT")
        else:
            lines.append(f"{indent * depth}{node.path} {node.document}")
        for child in node.children:
            visit(child, depth + 1)

    visit(root, 0)
    return "\n".join(lines)


__all__ = ["Node", "build_tree", "iter_breadth_first", "render_tree"]
