"""mediagen — media-generation orchestration core.

Validates generation requests against per-model capabilities, routes them to
the right provider, tracks long-running jobs and returns one canonical
``MediaResult`` per request.
"""

from mediagen.schemas.generation import GenerationRequest, MediaResult
from mediagen.services.orchestrator import GenerationOrchestrator

__all__ = ["GenerationOrchestrator", "GenerationRequest", "MediaResult"]
