# Application Package
from .optimizer import ParameterOptimizer
from .queue_builder import DueQueueBuilder
from .review_session import ReviewSessionManager
from .scheduling import FsrsSchedulingModel

__all__ = ["DueQueueBuilder", "FsrsSchedulingModel", "ParameterOptimizer", "ReviewSessionManager"]
