"""Context enrichment collaborators."""

from replykit.enrichment.base import ContextEnricher, NoopEnricher, StaticEnricher, apply_context

__all__ = ["ContextEnricher", "NoopEnricher", "StaticEnricher", "apply_context"]
