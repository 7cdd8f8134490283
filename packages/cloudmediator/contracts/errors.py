from __future__ import annotations


class DispatchError(Exception):
    """
    Base class for every error raised by the dispatch engine itself.
    Handler exceptions are never wrapped in it on the request path.
    """
