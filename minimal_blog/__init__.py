"""Minimal Blog - Backend.

A small multi-user blogging API:
- Email/password accounts with stateless JWT sessions (httpOnly cookie).
- Posts move between two states, `draft` and `published`, on each save.
- Listings with the author populated and tag filtering.

See DESIGN.md for how the pieces fit together.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
