from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Optional

from minimal_blog.auth.crud import get_user_by_id, public_user
from minimal_blog.errors import ForbiddenError, NotFoundError, ValidationError
from minimal_blog.util.ids import is_valid_id, new_id
from minimal_blog.util.time import utcnow_iso


STATUS_DRAFT = "draft"
STATUS_PUBLISHED = "published"
STATUSES = (STATUS_DRAFT, STATUS_PUBLISHED)


def normalize_tags(tags: Iterable[str] | None) -> List[str]:
    """Trim tags and drop duplicates, keeping first-seen order."""
    out: List[str] = []
    seen = set()
    for t in tags or []:
        s = str(t or "").strip()
        if not s:
            raise ValidationError("Tags must not be blank")
        if s in seen:
            continue
        seen.add(s)
        out.append(s)
    if not out:
        raise ValidationError("Tags are required")
    return out


def _require_text(value: str | None, label: str) -> str:
    s = value or ""
    if not s.strip():
        raise ValidationError(f"{label} length must be greater than 1")
    return s


def post_view(row: Any | Dict[str, Any], user: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Wire representation of a post.

    `user` is the owner's public view when populated, otherwise the owner id.
    """
    d = dict(row)
    return {
        "id": d["post_id"],
        "title": d["title"],
        "content": d["content"],
        "tags": json.loads(d.get("tags_json") or "[]"),
        "status": d["status"],
        "user": user if user is not None else d["user_id"],
        "createdAt": d["created_at"],
        "updatedAt": d["updated_at"],
    }


def get_post_row(conn: Any, post_id: str) -> Optional[Any]:
    if not is_valid_id(post_id):
        return None
    return conn.execute("SELECT * FROM posts WHERE post_id=?", (post_id,)).fetchone()


def _owner_views(conn: Any, user_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
    """Public views for a set of owners, each with its post index."""
    ids = sorted({str(u) for u in user_ids if u})
    if not ids:
        return {}
    marks = ",".join("?" for _ in ids)
    users = conn.execute(f"SELECT * FROM users WHERE user_id IN ({marks})", tuple(ids)).fetchall()
    refs = conn.execute(
        f"SELECT user_id, post_id FROM user_posts WHERE user_id IN ({marks}) ORDER BY ref_id",
        tuple(ids),
    ).fetchall()

    blogs_by_user: Dict[str, List[str]] = {u: [] for u in ids}
    for r in refs:
        blogs_by_user[str(r["user_id"])].append(str(r["post_id"]))

    return {
        str(u["user_id"]): public_user(u, blogs=blogs_by_user.get(str(u["user_id"]), []))
        for u in users
    }


def save_post(
    conn: Any,
    *,
    post_id: Optional[str],
    title: str,
    content: str,
    tags: Iterable[str],
    status: str,
    acting_user_id: str,
) -> Dict[str, Any]:
    """Create or overwrite a post with the given status.

    - With `post_id`: the post must exist and belong to `acting_user_id`.
    - Without: a new post is created for `acting_user_id` and appended to the
      owner's post index in the same transaction.
    """
    if status not in STATUSES:
        raise ValidationError(f"invalid_status: {status}")
    title = _require_text(title, "Title").strip()
    content = _require_text(content, "Content")
    tag_list = normalize_tags(tags)
    tags_json = json.dumps(tag_list, ensure_ascii=False)
    now = utcnow_iso()

    if post_id:
        row = get_post_row(conn, post_id)
        if row is None:
            raise NotFoundError("Blog not found")
        if str(row["user_id"]) != str(acting_user_id):
            raise ForbiddenError("You can only edit your own blogs")

        conn.execute(
            """
            UPDATE posts
            SET title=?, content=?, tags_json=?, status=?, updated_at=?
            WHERE post_id=?
            """,
            (title, content, tags_json, status, now, post_id),
        )
        updated = get_post_row(conn, post_id)
        assert updated is not None
        return post_view(updated)

    user = get_user_by_id(conn, acting_user_id)
    if user is None:
        raise NotFoundError("User not found")

    new_post_id = new_id()
    conn.execute(
        """
        INSERT INTO posts (post_id, user_id, title, content, tags_json, status, created_at, updated_at)
        VALUES (?,?,?,?,?,?,?,?)
        """,
        (new_post_id, str(user["user_id"]), title, content, tags_json, status, now, now),
    )
    conn.execute(
        "INSERT INTO user_posts (user_id, post_id, created_at) VALUES (?,?,?)",
        (str(user["user_id"]), new_post_id, now),
    )
    created = get_post_row(conn, new_post_id)
    assert created is not None
    return post_view(created)


def save_draft(conn: Any, **kwargs: Any) -> Dict[str, Any]:
    return save_post(conn, status=STATUS_DRAFT, **kwargs)


def publish(conn: Any, **kwargs: Any) -> Dict[str, Any]:
    return save_post(conn, status=STATUS_PUBLISHED, **kwargs)


def get_post(conn: Any, post_id: str) -> Dict[str, Any]:
    """Post with its owner populated. Malformed and unknown ids are both 404s."""
    row = get_post_row(conn, post_id)
    if row is None:
        raise NotFoundError("Blog not found")
    owners = _owner_views(conn, [row["user_id"]])
    return post_view(row, owners.get(str(row["user_id"])))


def list_posts(conn: Any, *, status: Optional[str] = None, tag: Optional[str] = None) -> List[Dict[str, Any]]:
    """All posts, newest first, owners populated.

    Optional filters: `status` (draft|published) and an exact `tag`.
    """
    sql = "SELECT * FROM posts"
    params: List[Any] = []
    if status:
        if status not in STATUSES:
            raise ValidationError(f"invalid_status: {status}")
        sql += " WHERE status=?"
        params.append(status)
    sql += " ORDER BY created_at DESC, post_id"
    rows = conn.execute(sql, tuple(params)).fetchall()

    wanted = (tag or "").strip()
    if wanted:
        rows = [r for r in rows if wanted in json.loads(r["tags_json"] or "[]")]

    owners = _owner_views(conn, [r["user_id"] for r in rows])
    return [post_view(r, owners.get(str(r["user_id"]))) for r in rows]


def list_user_posts(conn: Any, user_id: str) -> List[Dict[str, Any]]:
    """Every post owned by `user_id`, drafts included. Owner left as an id."""
    if not user_id:
        raise ValidationError("User ID is missing in headers")
    rows = conn.execute(
        "SELECT * FROM posts WHERE user_id=? ORDER BY created_at DESC, post_id",
        (user_id,),
    ).fetchall()
    return [post_view(r) for r in rows]


def list_tags(conn: Any) -> List[str]:
    """Distinct tags across published posts, newest post first."""
    rows = conn.execute(
        "SELECT tags_json FROM posts WHERE status=? ORDER BY created_at DESC, post_id",
        (STATUS_PUBLISHED,),
    ).fetchall()
    out: List[str] = []
    seen = set()
    for r in rows:
        for t in json.loads(r["tags_json"] or "[]"):
            if t not in seen:
                seen.add(t)
                out.append(t)
    return out
