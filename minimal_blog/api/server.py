from __future__ import annotations

from contextlib import asynccontextmanager, contextmanager
from typing import Any, Dict, Iterator, List, Optional

from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field

from minimal_blog import __version__
from minimal_blog.auth import auth_gate, get_acting_user_id, get_config
from minimal_blog.auth.crud import create_user, load_public_user, verify_user_credentials
from minimal_blog.auth.security import create_access_token
from minimal_blog.blogs import crud as blogs
from minimal_blog.config import Config, load_config
from minimal_blog.db import connect, ensure_db
from minimal_blog.errors import BlogError, InternalError


def _debug(msg: str) -> None:
    print(f"[api] {msg}")


@contextmanager
def _db(cfg: Config) -> Iterator[Any]:
    """Open a connection; anything that is not a BlogError becomes a 500."""
    try:
        with connect(cfg.DB_DSN) as conn:
            yield conn
    except BlogError:
        raise
    except Exception as e:
        _debug(f"unexpected error: {e!r}")
        raise InternalError(str(e)) from e


# -----------------------------
# Auth cookies
# -----------------------------


def _cookie_secure(cfg: Config) -> bool:
    """Return whether auth cookies should be marked Secure."""
    samesite = str(getattr(cfg, "AUTH_COOKIE_SAMESITE", "strict") or "strict").lower()
    secure = bool(getattr(cfg, "AUTH_COOKIE_SECURE", False))
    # Browsers require Secure when SameSite=None
    if samesite == "none":
        return True
    return secure


def _set_auth_cookie(response: Response, *, token: str, cfg: Config) -> None:
    """Set the httpOnly session cookie. Max-Age matches the token lifetime."""
    response.set_cookie(
        key=str(cfg.AUTH_COOKIE_NAME or "token"),
        value=str(token),
        httponly=True,
        samesite=str(cfg.AUTH_COOKIE_SAMESITE or "strict").lower(),
        secure=_cookie_secure(cfg),
        max_age=int(cfg.AUTH_TOKEN_EXPIRE_MINUTES) * 60,
        path=str(cfg.AUTH_COOKIE_PATH or "/"),
        domain=cfg.AUTH_COOKIE_DOMAIN,
    )


def _clear_auth_cookie(response: Response, cfg: Config) -> None:
    response.delete_cookie(
        key=str(cfg.AUTH_COOKIE_NAME or "token"),
        path=str(cfg.AUTH_COOKIE_PATH or "/"),
        domain=cfg.AUTH_COOKIE_DOMAIN,
    )


# -----------------------------
# Request bodies
# -----------------------------


class RegisterRequest(BaseModel):
    firstName: str = Field(min_length=1)
    lastName: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=1)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class BlogSaveRequest(BaseModel):
    """Body for both /api/blogs/save-draft and /api/blogs/publish.

    `id` absent -> create a new post; present -> overwrite that post.
    """

    id: Optional[str] = None
    title: str = Field(min_length=1, description="Title length must be greater than 1")
    content: str = Field(min_length=1, description="Content length must be greater than 1")
    tags: List[str] = Field(min_length=1, description="Tags are required")


# -----------------------------
# Routes
# -----------------------------


def register_routes(app: FastAPI) -> None:
    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {"status": "ok"}

    @app.post("/api/user/register", status_code=201)
    def user_register(payload: RegisterRequest, cfg: Config = Depends(get_config)) -> Dict[str, Any]:
        with _db(cfg) as conn:
            u = create_user(
                conn,
                first_name=payload.firstName,
                last_name=payload.lastName,
                email=str(payload.email),
                password=payload.password,
                rounds=cfg.AUTH_PASSWORD_ROUNDS,
            )
        _debug(f"registered user_id={u['id']}")
        return {"user": u}

    @app.post("/api/user/login", status_code=201)
    def user_login(
        payload: LoginRequest,
        response: Response,
        cfg: Config = Depends(get_config),
    ) -> Dict[str, Any]:
        with _db(cfg) as conn:
            row = verify_user_credentials(conn, str(payload.email), payload.password)
            u = load_public_user(conn, str(row["user_id"]))

        token = create_access_token(
            secret=cfg.AUTH_JWT_SECRET,
            user_id=str(u["id"]),
            expires_minutes=int(cfg.AUTH_TOKEN_EXPIRE_MINUTES),
        )
        _set_auth_cookie(response, token=token, cfg=cfg)
        return {"user": u}

    @app.post("/api/user/logout")
    def user_logout(response: Response, cfg: Config = Depends(get_config)) -> Dict[str, Any]:
        """Clear the browser session cookie. Issued tokens stay valid until expiry."""
        _clear_auth_cookie(response, cfg)
        return {"ok": True}

    @app.get("/api/user", status_code=201)
    def user_me(
        cfg: Config = Depends(get_config),
        user_id: str = Depends(get_acting_user_id),
    ) -> Dict[str, Any]:
        with _db(cfg) as conn:
            return {"user": load_public_user(conn, user_id)}

    @app.get("/api/blogs", status_code=201)
    def blogs_list(
        status: Optional[str] = Query(None, description="draft|published"),
        tag: Optional[str] = Query(None, description="Exact tag match"),
        cfg: Config = Depends(get_config),
        _user_id: str = Depends(get_acting_user_id),
    ) -> Dict[str, Any]:
        with _db(cfg) as conn:
            return {"blogs": blogs.list_posts(conn, status=status, tag=tag)}

    @app.get("/api/blogs/tags")
    def blogs_tags(
        cfg: Config = Depends(get_config),
        _user_id: str = Depends(get_acting_user_id),
    ) -> Dict[str, Any]:
        with _db(cfg) as conn:
            return {"tags": blogs.list_tags(conn)}

    @app.get("/api/blogs/{post_id}", status_code=201)
    def blogs_get(
        post_id: str,
        cfg: Config = Depends(get_config),
        _user_id: str = Depends(get_acting_user_id),
    ) -> Dict[str, Any]:
        with _db(cfg) as conn:
            return {"blog": blogs.get_post(conn, post_id)}

    @app.post("/api/blogs/publish", status_code=201)
    def blogs_publish(
        payload: BlogSaveRequest,
        cfg: Config = Depends(get_config),
        user_id: str = Depends(get_acting_user_id),
    ) -> Dict[str, Any]:
        with _db(cfg) as conn:
            blog = blogs.publish(
                conn,
                post_id=payload.id or None,
                title=payload.title,
                content=payload.content,
                tags=payload.tags,
                acting_user_id=user_id,
            )
        return {"blog": blog}

    @app.post("/api/blogs/save-draft", status_code=201)
    def blogs_save_draft(
        payload: BlogSaveRequest,
        cfg: Config = Depends(get_config),
        user_id: str = Depends(get_acting_user_id),
    ) -> Dict[str, Any]:
        with _db(cfg) as conn:
            blog = blogs.save_draft(
                conn,
                post_id=payload.id or None,
                title=payload.title,
                content=payload.content,
                tags=payload.tags,
                acting_user_id=user_id,
            )
        return {"blog": blog}

    @app.get("/api/my-blogs")
    def my_blogs(
        cfg: Config = Depends(get_config),
        user_id: str = Depends(get_acting_user_id),
    ) -> Dict[str, Any]:
        with _db(cfg) as conn:
            return {"blogs": blogs.list_user_posts(conn, user_id)}


# -----------------------------
# Error handlers
# -----------------------------


async def _blog_error_handler(request: Request, exc: BlogError) -> JSONResponse:
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code)


async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    _debug(f"unexpected error on {request.method} {request.url.path}: {exc!r}")
    return JSONResponse({"error": str(exc) or exc.__class__.__name__}, status_code=500)


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    loc = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    msg = str(first.get("msg") or "invalid request")
    return JSONResponse(
        {"message": "Validation failed", "errors": f"{loc}: {msg}" if loc else msg},
        status_code=400,
    )


def create_app(cfg: Optional[Config] = None) -> FastAPI:
    cfg = cfg or load_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Ensure schema exists before the first request.
        ensure_db(cfg.DB_DSN)
        _debug(f"ready (db={cfg.DB_DSN})")
        yield

    app = FastAPI(title="Minimal Blog", version=__version__, lifespan=lifespan)
    # Make config available to auth deps and the gate.
    app.state.cfg = cfg

    # Registered first so CORS wraps it (preflight requests carry no cookie).
    app.middleware("http")(auth_gate)

    # CORS is mainly needed for local development (frontend dev server -> API on :8000).
    _cors_origins = [o.strip() for o in (cfg.CORS_ALLOW_ORIGINS or "").split(",") if o.strip()]
    if _cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=_cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_exception_handler(BlogError, _blog_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    # Starlette re-raises after sending this response so the server still logs the traceback.
    app.add_exception_handler(Exception, _unexpected_error_handler)
    register_routes(app)
    return app

