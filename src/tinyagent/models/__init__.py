"""Language-model adapter interface."""

from tinyagent.models.adapter import GenerationEvent, GenerationEventType, ModelAdapter

__all__ = ["GenerationEvent", "GenerationEventType", "ModelAdapter"]
