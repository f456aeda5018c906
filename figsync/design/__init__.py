"""Design document access: the files API client and payload parsing."""

from .client import DesignClient
from .document import NODE_KINDS, kind_for_type, parse_document

__all__ = ["DesignClient", "NODE_KINDS", "kind_for_type", "parse_document"]
