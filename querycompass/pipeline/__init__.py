"""
Pipeline package for QueryCompass.

Contains the LangGraph orchestrator that turns one chat turn into one bot message.
"""

from querycompass.pipeline.orchestrator import QueryCompassPipeline, TurnResult, create_pipeline

__all__ = ["QueryCompassPipeline", "TurnResult", "create_pipeline"]
