"""Explorer API adapter: transport, submit/poll/fetch, and result normalization."""

from . import urls  # re-export for callers needing low-level helpers
from .client import ExplorerAdapter
from .normalize import normalize

__all__ = ["ExplorerAdapter", "normalize", "urls"]
