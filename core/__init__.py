"""Core module - shared plumbing for the plant operations engine.

Holds configuration, the error taxonomy and observability helpers used by
the lifecycle controller, the batch matcher and the outer surfaces
(API, Temporal worker, scripts).
"""

__version__ = "1.0.0"
