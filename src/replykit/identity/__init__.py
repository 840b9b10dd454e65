"""Identity mapping and session resolution."""

from replykit.identity.mapper import IdentityMapper
from replykit.identity.session import HeaderSessionResolver, MockSessionResolver, SessionResolver

__all__ = [
    "HeaderSessionResolver",
    "IdentityMapper",
    "MockSessionResolver",
    "SessionResolver",
]
