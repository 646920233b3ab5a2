"""
QueryCompass Agents Module

The agents sequenced by the pipeline for one chat turn.

Available Agents:
    - BaseAgent: Abstract base class for all agents
    - RouterAgent: Intent classification (fails closed to general conversation)
    - SQLGeneratorAgent: Full statement generation from the live schema
    - QueryRefinerAgent: In-place patching of the previous statement
    - SQLVerifierAgent: Safety verdict, with optional corrected statement
    - SQLExecutorAgent: RBAC-gated execution with hashed, bounded results
    - VisualizationAgent: Chart choice and summary over a masked sample
    - ResultInterpreterAgent / GeneralConversationAgent: text replies
    - TitleGeneratorAgent: Conversation titles

Usage:
    from querycompass.agents import RouterAgent

    router = RouterAgent(llm_provider=provider)
    output = await router(RouterAgentInput(query="show all customers"))
"""

from querycompass.agents.base import BaseAgent, format_history
from querycompass.agents.conversation import GeneralConversationAgent
from querycompass.agents.executor import SQLExecutorAgent, is_modification
from querycompass.agents.interpreter import ResultInterpreterAgent
from querycompass.agents.refiner import QueryRefinerAgent
from querycompass.agents.router import RouterAgent
from querycompass.agents.sql import SQLGeneratorAgent
from querycompass.agents.title import TitleGeneratorAgent
from querycompass.agents.verifier import SQLVerifierAgent
from querycompass.agents.visualization import VisualizationAgent

__all__ = [
    "BaseAgent",
    "format_history",
    "GeneralConversationAgent",
    "QueryRefinerAgent",
    "ResultInterpreterAgent",
    "RouterAgent",
    "SQLExecutorAgent",
    "SQLGeneratorAgent",
    "SQLVerifierAgent",
    "TitleGeneratorAgent",
    "VisualizationAgent",
    "is_modification",
]
