"""Threaded comment assembly for display."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence

from commentguard.moderation.domain.models import CommentStatus, CommentTree, CommentWithUser
from commentguard.obs import metrics

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def filter_approved_comments(comments: Iterable[CommentWithUser]) -> list[CommentWithUser]:
    return [comment for comment in comments if comment.status == CommentStatus.APPROVED]


def _to_node(comment: CommentWithUser) -> CommentTree:
    data = comment.model_dump(exclude={"children"})
    data["children"] = []
    return CommentTree.model_validate(data)


def build_comment_tree(comments: Sequence[CommentWithUser]) -> list[CommentTree]:
    """Build a tree of approved comments from a flat list.

    Replies whose parent is missing or not approved are promoted to roots.
    Siblings keep the order of the input list.
    """

    nodes: dict[int, CommentTree] = {}
    for comment in filter_approved_comments(comments):
        if comment.id not in nodes:
            nodes[comment.id] = _to_node(comment)

    roots: list[CommentTree] = []
    for node in nodes.values():
        parent = nodes.get(node.parent_id) if node.parent_id is not None else None
        if parent is not None and parent is not node:
            parent.children.append(node)
        else:
            roots.append(node)

    reachable = _collect_ids(roots)
    if len(reachable) < len(nodes):
        _promote_cycles(nodes, roots, reachable)
    metrics.inc_comment_tree_built()
    return roots


def _collect_ids(start: Iterable[CommentTree], into: set[int] | None = None) -> set[int]:
    seen = into if into is not None else set()
    stack = list(start)
    while stack:
        node = stack.pop()
        seen.add(node.id)
        stack.extend(node.children)
    return seen


def _promote_cycles(nodes: dict[int, CommentTree], roots: list[CommentTree], reachable: set[int]) -> None:
    # Parent references that loop back on themselves leave nodes unreachable
    # from any root; detach the first node of each loop and make it a root.
    for node in nodes.values():
        if node.id in reachable:
            continue
        parent = nodes[node.parent_id]  # type: ignore[index]
        parent.children[:] = [child for child in parent.children if child is not node]
        roots.append(node)
        _collect_ids([node], reachable)


def _pin_key(node: CommentTree) -> datetime:
    pinned_at = node.pinned_at or _EPOCH
    if pinned_at.tzinfo is None:
        pinned_at = pinned_at.replace(tzinfo=timezone.utc)
    return pinned_at


def sort_pinned_first(nodes: Sequence[CommentTree]) -> list[CommentTree]:
    """Pinned nodes first, most recently pinned leading; the rest keep their order."""

    pinned = sorted((node for node in nodes if node.is_pinned), key=_pin_key, reverse=True)
    unpinned = [node for node in nodes if not node.is_pinned]
    return pinned + unpinned


def build_display_tree(comments: Sequence[CommentWithUser]) -> list[CommentTree]:
    return sort_pinned_first(build_comment_tree(comments))


def validate_tree_only_approved(tree: Iterable[CommentTree]) -> bool:
    for node in tree:
        if node.status != CommentStatus.APPROVED:
            return False
        if not validate_tree_only_approved(node.children):
            return False
    return True


def validate_tree_relationships(tree: Iterable[CommentTree], expected_parent_id: Optional[int] = None) -> bool:
    """Check that every child's ``parent_id`` points at the node holding it."""

    for node in tree:
        if expected_parent_id is not None and node.parent_id != expected_parent_id:
            return False
        if not validate_tree_relationships(node.children, node.id):
            return False
    return True


def count_tree_comments(tree: Iterable[CommentTree]) -> int:
    return sum(1 + count_tree_comments(node.children) for node in tree)


def flatten_comment_tree(tree: Iterable[CommentTree]) -> List[CommentWithUser]:
    """Pre-order walk returning the comments without their children."""

    result: List[CommentWithUser] = []

    def _walk(nodes: Iterable[CommentTree]) -> None:
        for node in nodes:
            result.append(CommentWithUser.model_validate(node.model_dump(exclude={"children"})))
            _walk(node.children)

    _walk(tree)
    return result
