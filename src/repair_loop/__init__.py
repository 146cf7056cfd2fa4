"""Self-correcting code repair loop.

Classifies build and runtime errors in generated code, extracts the context
needed to fix them and escalates repair strategy across attempts until the
code works or the retry budget runs out.
"""

from repair_loop._version import __version__
from repair_loop.core import (
    ErrorAnalyzer,
    ErrorDetectionService,
    FeedbackLoop,
    IncrementalFixGenerator,
    SmartContextExtractor,
)

__all__ = [
    "ErrorAnalyzer",
    "ErrorDetectionService",
    "FeedbackLoop",
    "IncrementalFixGenerator",
    "SmartContextExtractor",
    "__version__",
]
