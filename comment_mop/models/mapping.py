"""Mapping functions to convert Reddit API objects to our data models."""

import logging
from typing import Any, List

from asyncpraw.models import Comment, Redditor, Submission

from comment_mop.models.node import ModeratorUser, Node, NodeKind

logger = logging.getLogger(__name__)

USER_FULLNAME_PREFIX = "t2_"


def _subreddit_name(thing: Any) -> str:
    subreddit = getattr(thing, "subreddit", None)
    if subreddit is None:
        return ""
    return str(getattr(subreddit, "display_name", subreddit)).lower()


def comment_to_node(comment: Comment) -> Node:
    """
    Convert an asyncpraw Comment object to a Node snapshot.

    Args:
        comment: The Reddit comment object from asyncpraw

    Returns:
        A frozen Node describing the comment's moderation state
    """
    return Node(
        id=comment.id,
        kind=NodeKind.COMMENT,
        subreddit=_subreddit_name(comment),
        is_distinguished=bool(getattr(comment, "distinguished", None)),
        removed=bool(getattr(comment, "removed", False)),
        locked=bool(getattr(comment, "locked", False)),
    )


def submission_to_node(submission: Submission) -> Node:
    """
    Convert an asyncpraw Submission object to a Node snapshot.

    Args:
        submission: The Reddit submission object from asyncpraw

    Returns:
        A frozen Node describing the post's moderation state
    """
    return Node(
        id=submission.id,
        kind=NodeKind.POST,
        subreddit=_subreddit_name(submission),
        is_distinguished=bool(getattr(submission, "distinguished", None)),
        removed=bool(getattr(submission, "removed", False)),
        locked=bool(getattr(submission, "locked", False)),
    )


def normalize_user_id(user_id: str) -> str:
    """Strip the ``t2_`` fullname prefix so ids from every endpoint compare equal."""
    if user_id and user_id.startswith(USER_FULLNAME_PREFIX):
        return user_id[len(USER_FULLNAME_PREFIX):]
    return user_id


def redditor_to_user(redditor: Redditor) -> ModeratorUser:
    """
    Convert an asyncpraw Redditor object to a ModeratorUser.

    Moderator listings report ids as fullnames (``t2_abc``) while
    ``user.me()`` reports the bare id, so both are normalized.
    """
    return ModeratorUser(
        id=normalize_user_id(str(getattr(redditor, "id", ""))),
        username=getattr(redditor, "name", ""),
    )


def comments_to_nodes(comments: List[Comment]) -> List[Node]:
    """
    Convert a list of asyncpraw Comment objects to Nodes.

    Args:
        comments: List of Reddit comment objects from asyncpraw

    Returns:
        List of Node snapshots, in the same order
    """
    return [comment_to_node(comment) for comment in comments]
