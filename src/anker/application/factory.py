"""
Component factory
Centralizes wiring of stores, the scheduling model and services from config.
"""

from anker.application.config import AppConfig
from anker.application.extensions import ExtensionRegistry, default_registry
from anker.application.optimizer import ParameterOptimizer
from anker.application.review_session import ReviewSessionManager
from anker.application.scheduling import FsrsSchedulingModel
from anker.domain.ports import ParameterFitter
from anker.infrastructure.review_log import JsonlReviewLogStore
from anker.infrastructure.vault_store import MarkdownCardStore


def get_card_store(config: AppConfig) -> MarkdownCardStore:
    return MarkdownCardStore(config.vault_root)


def get_review_log(config: AppConfig) -> JsonlReviewLogStore:
    return JsonlReviewLogStore(config.history_file)


def get_session_manager(config: AppConfig) -> ReviewSessionManager:
    """
    Returns a session manager over the configured vault and review history.
    """
    store = get_card_store(config)
    return ReviewSessionManager(
        catalog=store,
        state_store=store,
        model=FsrsSchedulingModel(),
        log_store=get_review_log(config),
        config=config.scheduling(),
        horizon=config.due_horizon,
    )


def _default_fitter() -> ParameterFitter:
    from anker.infrastructure.fsrs_fitter import FsrsRsFitter

    return FsrsRsFitter()


def get_optimizer() -> ParameterOptimizer:
    return ParameterOptimizer(_default_fitter)


def get_extension_registry() -> ExtensionRegistry:
    return default_registry()
