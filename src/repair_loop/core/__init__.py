"""Core repair loop components.

This module exports the main business logic classes:
- ErrorAnalyzer: Classifies raw error text
- ErrorDetectionService: Normalizes stage errors into DetectedErrors
- SmartContextExtractor: Cuts bounded context around an error
- IncrementalFixGenerator: Generates fixes with escalating scope
- FeedbackLoop: Session state machine driving repeated fixes
"""

from repair_loop.core.context_extractor import SmartContextExtractor
from repair_loop.core.error_analyzer import CLASSIFICATION_RULES, ClassificationRule, ErrorAnalyzer
from repair_loop.core.error_detection import ErrorDetectionService
from repair_loop.core.feedback_loop import FeedbackLoop
from repair_loop.core.feedback_policy import (
    get_context_window_size,
    get_error_priority,
    get_retry_strategy,
    should_retry,
)
from repair_loop.core.fix_generator import IncrementalFixGenerator

__all__ = [
    "CLASSIFICATION_RULES",
    "ClassificationRule",
    "ErrorAnalyzer",
    "ErrorDetectionService",
    "FeedbackLoop",
    "IncrementalFixGenerator",
    "SmartContextExtractor",
    "get_context_window_size",
    "get_error_priority",
    "get_retry_strategy",
    "should_retry",
]
