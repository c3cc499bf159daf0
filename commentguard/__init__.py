"""Comment moderation and trust pipeline for the blog platform."""

from commentguard.comments.tree import build_comment_tree
from commentguard.moderation.domain.pipeline import CommentModerationService, moderate

__all__ = ["build_comment_tree", "moderate", "CommentModerationService"]
