# Infrastructure Adapters Package
from .review_log import JsonlReviewLogStore
from .vault_store import MarkdownCardStore

__all__ = ["JsonlReviewLogStore", "MarkdownCardStore"]
