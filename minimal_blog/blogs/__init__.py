"""Post lifecycle: draft/publish saves, ownership checks, listings."""

from .crud import STATUS_DRAFT, STATUS_PUBLISHED, get_post, list_posts, list_tags, list_user_posts, publish, save_draft

__all__ = [
    "STATUS_DRAFT",
    "STATUS_PUBLISHED",
    "get_post",
    "list_posts",
    "list_tags",
    "list_user_posts",
    "publish",
    "save_draft",
]
