from __future__ import annotations

from datetime import datetime, timedelta, timezone

from hypothesis import given, strategies as st

from commentguard.comments.tree import (
    build_comment_tree,
    build_display_tree,
    count_tree_comments,
    filter_approved_comments,
    flatten_comment_tree,
    sort_pinned_first,
    validate_tree_only_approved,
    validate_tree_relationships,
)
from commentguard.moderation.domain.models import CommentAuthor, CommentStatus, CommentWithUser

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_comment(
    comment_id: int,
    parent_id: int | None = None,
    *,
    status: CommentStatus = CommentStatus.APPROVED,
    is_pinned: bool = False,
    pinned_at: datetime | None = None,
) -> CommentWithUser:
    created = BASE_TIME + timedelta(minutes=comment_id)
    return CommentWithUser(
        id=comment_id,
        post_slug="2024-05-01-hello",
        parent_id=parent_id,
        user_id=comment_id % 3 + 1,
        content=f"comment {comment_id}",
        status=status,
        is_pinned=is_pinned,
        pinned_at=pinned_at,
        created_at=created,
        updated_at=created,
        user=CommentAuthor(github_login=f"user{comment_id % 3 + 1}"),
    )


def test_filter_keeps_only_approved() -> None:
    comments = [
        make_comment(1),
        make_comment(2, status=CommentStatus.PENDING),
        make_comment(3, status=CommentStatus.REJECTED),
        make_comment(4, status=CommentStatus.DELETED),
    ]
    assert [c.id for c in filter_approved_comments(comments)] == [1]


def test_empty_input_builds_empty_tree() -> None:
    assert build_comment_tree([]) == []


def test_nested_replies_attach_to_parents() -> None:
    tree = build_comment_tree([make_comment(1), make_comment(2, 1), make_comment(3, 2), make_comment(4)])
    assert [node.id for node in tree] == [1, 4]
    assert [child.id for child in tree[0].children] == [2]
    assert [child.id for child in tree[0].children[0].children] == [3]
    assert validate_tree_relationships(tree)
    assert validate_tree_only_approved(tree)
    assert count_tree_comments(tree) == 4


def test_reply_listed_before_parent_still_nests() -> None:
    tree = build_comment_tree([make_comment(2, 1), make_comment(1)])
    assert [node.id for node in tree] == [1]
    assert [child.id for child in tree[0].children] == [2]


def test_unapproved_comments_and_their_replies() -> None:
    comments = [
        make_comment(1),
        make_comment(2, 1, status=CommentStatus.PENDING),
        make_comment(3, 2),
        make_comment(4, 99),
    ]
    tree = build_comment_tree(comments)
    # orphans whose parent is hidden or missing become roots
    assert [node.id for node in tree] == [1, 3, 4]
    assert tree[0].children == []
    assert count_tree_comments(tree) == 3


def test_siblings_keep_input_order() -> None:
    tree = build_comment_tree([make_comment(1), make_comment(5, 1), make_comment(3, 1), make_comment(4, 1)])
    assert [child.id for child in tree[0].children] == [5, 3, 4]


def test_duplicate_ids_keep_first_occurrence() -> None:
    first = make_comment(1)
    second = first.model_copy(update={"content": "edited"})
    tree = build_comment_tree([first, second])
    assert len(tree) == 1
    assert tree[0].content == "comment 1"


def test_self_parent_becomes_root() -> None:
    tree = build_comment_tree([make_comment(1, 1)])
    assert [node.id for node in tree] == [1]
    assert tree[0].children == []


def test_parent_cycle_is_broken_without_losing_nodes() -> None:
    tree = build_comment_tree([make_comment(1, 2), make_comment(2, 1), make_comment(3)])
    assert count_tree_comments(tree) == 3
    assert {node.id for node in flatten_comment_tree(tree)} == {1, 2, 3}


def test_input_is_not_mutated() -> None:
    comments = [make_comment(1), make_comment(2, 1)]
    build_comment_tree(comments)
    assert not hasattr(comments[0], "children")


def test_pinned_roots_lead_most_recent_first() -> None:
    comments = [
        make_comment(1),
        make_comment(2, is_pinned=True, pinned_at=BASE_TIME),
        make_comment(3),
        make_comment(4, is_pinned=True, pinned_at=BASE_TIME + timedelta(hours=1)),
        make_comment(5, is_pinned=True),
    ]
    tree = build_display_tree(comments)
    assert [node.id for node in tree] == [4, 2, 5, 1, 3]


def test_sort_pinned_first_accepts_naive_pin_times() -> None:
    tree = build_comment_tree(
        [
            make_comment(1, is_pinned=True, pinned_at=datetime(2024, 5, 1)),
            make_comment(2, is_pinned=True, pinned_at=BASE_TIME + timedelta(days=1)),
        ]
    )
    assert [node.id for node in sort_pinned_first(tree)] == [2, 1]


def test_relationship_validator_detects_mismatch() -> None:
    tree = build_comment_tree([make_comment(1), make_comment(2, 1)])
    tree[0].children[0].parent_id = 7
    assert validate_tree_relationships(tree) is False


def test_flatten_is_pre_order() -> None:
    comments = [make_comment(1), make_comment(2, 1), make_comment(3, 2), make_comment(4, 1), make_comment(5)]
    flat = flatten_comment_tree(build_comment_tree(comments))
    assert [c.id for c in flat] == [1, 2, 3, 4, 5]
    assert all(type(c) is CommentWithUser for c in flat)


comment_lists = st.lists(
    st.tuples(
        st.sampled_from(list(CommentStatus)),
        st.one_of(st.none(), st.integers(min_value=1, max_value=25)),
    ),
    max_size=25,
)


@given(comment_lists)
def test_tree_holds_exactly_the_approved_comments(rows: list[tuple[CommentStatus, int | None]]) -> None:
    comments = [make_comment(idx + 1, parent, status=status) for idx, (status, parent) in enumerate(rows)]
    tree = build_comment_tree(comments)

    approved_ids = sorted(c.id for c in comments if c.status == CommentStatus.APPROVED)
    assert sorted(c.id for c in flatten_comment_tree(tree)) == approved_ids
    assert count_tree_comments(tree) == len(approved_ids)
    assert validate_tree_only_approved(tree)
    assert validate_tree_relationships(tree)
