"""AI prompt collection, answering and validation."""

from .collector import AiCollector, CollectorEntry, PromptExample

__all__ = ["AiCollector", "CollectorEntry", "PromptExample"]
