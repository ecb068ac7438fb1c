from .models import Source, is_placeholder, make_placeholder, placeholder_origin
from .registry import AliasRegistry, SourceObserver
from .rewrite import rewrite_response

__all__ = [
    "AliasRegistry",
    "Source",
    "SourceObserver",
    "is_placeholder",
    "make_placeholder",
    "placeholder_origin",
    "rewrite_response",
]
