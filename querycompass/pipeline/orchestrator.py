"""
QueryCompass Pipeline Orchestrator

LangGraph-based pipeline for one chat turn:
- RouterAgent picks one of four paths
- database_query: SQLGeneratorAgent -> SQLVerifierAgent -> SQLExecutorAgent -> VisualizationAgent
- query_refinement: QueryRefinerAgent -> SQLVerifierAgent -> ... with fallback to full generation
- result_interpreter / general_conversation: text replies

The pipeline is the only component that writes conversations and audit
entries. Every path ends with exactly one bot message, appended after the
graph reaches END. The verifier node is the only way into the executor node.
"""

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypedDict

from langgraph.graph import END, StateGraph

from querycompass.agents import (
    GeneralConversationAgent,
    QueryRefinerAgent,
    ResultInterpreterAgent,
    RouterAgent,
    SQLExecutorAgent,
    SQLGeneratorAgent,
    SQLVerifierAgent,
    TitleGeneratorAgent,
    VisualizationAgent,
)
from querycompass.agents.executor import EXECUTION_FAILED_ERROR
from querycompass.agents.visualization import FALLBACK_PACKAGE
from querycompass.audit.store import AuditLogStore
from querycompass.config import get_settings
from querycompass.constants import (
    ASSISTANT_UNAVAILABLE_TEXT,
    EXECUTION_FAILED_TEXT,
    GENERATION_FAILED_TEXT,
    INTENT_DETECTED_STEPS,
    MODIFICATION_DONE_TEXT,
    NOTHING_TO_REFINE_TEXT,
    PERMISSION_DENIED_TEXT,
    STEP_ANALYZING,
    STEP_CONVERSING,
    STEP_EXECUTING,
    STEP_GENERATING,
    STEP_INTERPRETING,
    STEP_REFINE_FALLBACK,
    STEP_REFINING,
    STEP_ROUTING,
    STEP_VERIFYING,
    STEP_VISUALIZING,
    UNSAFE_QUERY_TEXT,
    UNSAFE_REFINEMENT_TEXT,
    AuditAction,
    Intent,
    SqlVersionReason,
)
from querycompass.conversations.store import ConversationNotFoundError, ConversationStore
from querycompass.database.manager import DatabasePoolManager
from querycompass.database.schema import SchemaProvider
from querycompass.models import (
    AgentError,
    AgentInput,
    ChatMessage,
    ChatRequest,
    ChatResponse,
    Conversation,
    CurrentUser,
    ExecutionResult,
    HistoryMessage,
    PermissionDeniedError,
    QueryRefinerInput,
    RefinementResult,
    ResultInterpreterInput,
    RouterAgentInput,
    SQLExecutorInput,
    SQLGeneratorInput,
    SQLVerifierInput,
    VerificationResult,
    VisualizationInput,
    VisualizationPackage,
)

logger = logging.getLogger(__name__)

EventCallback = Callable[[str, dict[str, Any]], Awaitable[None]]

VERIFIER_UNAVAILABLE_REASONING = "The safety check could not be completed."


# ============================================================================
# Pipeline State Schema
# ============================================================================


class PipelineState(TypedDict, total=False):
    """State of one turn as it moves through the graph."""

    # Input
    turn_id: str
    query: str
    conversation_history: list[HistoryMessage]
    conversation_id: str
    database_id: str
    user: CurrentUser
    last_result: dict[str, Any] | None

    # Router output
    intent: Intent
    route_parse_failed: bool

    # Refiner output
    previous_sql: str | None
    refinement: RefinementResult | None
    refine_fallback: bool

    # Generator / verifier output
    sql_source: str
    candidate_sql: str | None
    verification: VerificationResult | None
    final_sql: str | None

    # Executor / visualization output
    execution: ExecutionResult | None
    vis_package: VisualizationPackage | None

    # Terminal
    bot_message: ChatMessage | None
    rejected: bool

    # Pipeline metadata
    current_agent: str | None
    agent_timings: dict[str, float]
    llm_calls: int


@dataclass
class TurnResult:
    """Outcome of one turn: the persisted bot message and where it went."""

    conversation_id: str
    message: ChatMessage
    rejected: bool = False

    def to_payload(self) -> dict[str, Any]:
        return ChatResponse(conversation_id=self.conversation_id, **dict(self.message)).to_payload()


# ============================================================================
# QueryCompass Pipeline
# ============================================================================


class QueryCompassPipeline:
    """
    LangGraph-based pipeline orchestrating the QueryCompass agents.

    Flow:
        1. RouterAgent: classify the turn
        2. QueryRefinerAgent (refinement only): patch the previous statement,
           or fall back to SQLGeneratorAgent
        3. SQLVerifierAgent: mandatory safety gate
        4. SQLExecutorAgent: RBAC gate and execution
        5. VisualizationAgent: chart and summary over a masked sample

    Usage:
        pipeline = QueryCompassPipeline(conversation_store, audit_log, pool_manager)
        result = await pipeline.run(request, user)

        # Or with progress events:
        result = await pipeline.run_with_streaming(request, user, event_callback=callback)
    """

    def __init__(
        self,
        conversation_store: ConversationStore,
        audit_log: AuditLogStore,
        pool_manager: DatabasePoolManager,
        llm_provider=None,
        schema_provider: SchemaProvider | None = None,
    ):
        """
        Initialize pipeline with dependencies.

        Args:
            conversation_store: Conversation persistence
            audit_log: Best-effort audit trail
            pool_manager: Target database pools
            llm_provider: Completion provider shared by every agent; when
                omitted each agent builds its own from settings
            schema_provider: Schema descriptions; built from pool_manager by default
        """
        self.config = get_settings()
        self.conversation_store = conversation_store
        self.audit_log = audit_log
        self.pool_manager = pool_manager
        self.schema_provider = schema_provider or SchemaProvider(pool_manager)

        self.router = RouterAgent(llm_provider=llm_provider)
        self.generator = SQLGeneratorAgent(self.schema_provider, llm_provider=llm_provider)
        self.refiner = QueryRefinerAgent(self.schema_provider, llm_provider=llm_provider)
        self.verifier = SQLVerifierAgent(self.schema_provider, llm_provider=llm_provider)
        self.executor = SQLExecutorAgent(pool_manager)
        self.visualizer = VisualizationAgent(llm_provider=llm_provider)
        self.interpreter = ResultInterpreterAgent(llm_provider=llm_provider)
        self.conversation = GeneralConversationAgent(llm_provider=llm_provider)
        self.title_generator = TitleGeneratorAgent(llm_provider=llm_provider)

        self._stream_callbacks: dict[str, EventCallback] = {}
        self._conversation_locks: dict[str, tuple[asyncio.Lock, int]] = {}

        self.graph = self._build_graph()
        logger.info("QueryCompass pipeline initialized")

    def _build_graph(self):
        """Build and compile the LangGraph state machine."""
        workflow = StateGraph(PipelineState)

        workflow.add_node("router", self._run_router)
        workflow.add_node("refiner", self._run_refiner)
        workflow.add_node("generator", self._run_generator)
        workflow.add_node("verifier", self._run_verifier)
        workflow.add_node("executor", self._run_executor)
        workflow.add_node("visualization", self._run_visualization)
        workflow.add_node("interpreter", self._run_interpreter)
        workflow.add_node("conversation", self._run_conversation)

        workflow.set_entry_point("router")

        workflow.add_conditional_edges(
            "router",
            self._select_path,
            {
                Intent.DATABASE_QUERY.value: "generator",
                Intent.QUERY_REFINEMENT.value: "refiner",
                Intent.RESULT_INTERPRETER.value: "interpreter",
                Intent.GENERAL_CONVERSATION.value: "conversation",
            },
        )
        workflow.add_conditional_edges(
            "refiner",
            self._after_refiner,
            {"verify": "verifier", "regenerate": "generator", "end": END},
        )
        workflow.add_conditional_edges(
            "generator",
            self._continue_unless_finished("verify"),
            {"verify": "verifier", "end": END},
        )
        workflow.add_conditional_edges(
            "verifier",
            self._continue_unless_finished("execute"),
            {"execute": "executor", "end": END},
        )
        workflow.add_conditional_edges(
            "executor",
            self._continue_unless_finished("visualize"),
            {"visualize": "visualization", "end": END},
        )
        workflow.add_edge("visualization", END)
        workflow.add_edge("interpreter", END)
        workflow.add_edge("conversation", END)

        return workflow.compile()

    # ========================================================================
    # Agent Execution Methods
    # ========================================================================

    async def _run_router(self, state: PipelineState) -> PipelineState:
        """Run RouterAgent. Any failure resolves to general conversation."""
        start_time = time.time()
        state["current_agent"] = "RouterAgent"
        await self._emit(state, STEP_ROUTING)

        try:
            output = await self.router(
                RouterAgentInput(query=state["query"], conversation_history=state["conversation_history"])
            )
            state["intent"] = output.intent
            state["route_parse_failed"] = output.parse_failed
            state["llm_calls"] += output.metadata.llm_calls
        except AgentError as e:
            logger.warning(f"RouterAgent failed, defaulting to general conversation: {e}")
            state["intent"] = Intent.GENERAL_CONVERSATION
            state["route_parse_failed"] = True

        await self._audit(
            state, AuditAction.ROUTE, {"prompt": state["query"], "tool": state["intent"].value}
        )
        await self._emit(state, INTENT_DETECTED_STEPS[state["intent"]])
        self._record_timing(state, "router", start_time)
        return state

    async def _run_refiner(self, state: PipelineState) -> PipelineState:
        """Run QueryRefinerAgent against the last executed statement."""
        start_time = time.time()
        state["current_agent"] = "QueryRefinerAgent"

        previous_sql = await self.conversation_store.get_last_executed_sql(state["conversation_id"])
        state["previous_sql"] = previous_sql
        if not previous_sql:
            state["bot_message"] = ChatMessage(sender="bot", text=NOTHING_TO_REFINE_TEXT)
            return state

        await self._emit(state, STEP_REFINING)
        try:
            output = await self.refiner(
                QueryRefinerInput(
                    query=state["query"],
                    conversation_history=state["conversation_history"],
                    database_id=state["database_id"],
                    previous_sql=previous_sql,
                )
            )
            refinement = output.refinement
            state["llm_calls"] += output.metadata.llm_calls
        except AgentError as e:
            logger.warning(f"QueryRefinerAgent failed, regenerating: {e}")
            refinement = RefinementResult(explanation="", was_modified=False)

        state["refinement"] = refinement
        if refinement.was_modified and refinement.sql:
            state["candidate_sql"] = refinement.sql
            state["sql_source"] = SqlVersionReason.REFINED.value
        else:
            state["refine_fallback"] = True
            state["sql_source"] = SqlVersionReason.REGENERATED.value
            await self._emit(state, STEP_REFINE_FALLBACK)

        self._record_timing(state, "refiner", start_time)
        return state

    async def _run_generator(self, state: PipelineState) -> PipelineState:
        """Run SQLGeneratorAgent for the original utterance."""
        start_time = time.time()
        state["current_agent"] = "SQLGeneratorAgent"
        if not state.get("refine_fallback"):
            await self._emit(state, STEP_GENERATING)
            state["sql_source"] = SqlVersionReason.INITIAL.value

        try:
            output = await self.generator(
                SQLGeneratorInput(
                    query=state["query"],
                    conversation_history=state["conversation_history"],
                    database_id=state["database_id"],
                )
            )
            state["candidate_sql"] = output.sql
            state["llm_calls"] += output.metadata.llm_calls
        except AgentError as e:
            logger.error(f"SQLGeneratorAgent failed: {e}")
            state["bot_message"] = ChatMessage(sender="bot", text=GENERATION_FAILED_TEXT, is_error=True)

        self._record_timing(state, "generator", start_time)
        return state

    async def _run_verifier(self, state: PipelineState) -> PipelineState:
        """Run SQLVerifierAgent. Fails closed."""
        start_time = time.time()
        state["current_agent"] = "SQLVerifierAgent"
        await self._emit(state, STEP_VERIFYING)

        candidate_sql = state["candidate_sql"]
        try:
            output = await self.verifier(
                SQLVerifierInput(
                    query=state["query"],
                    conversation_history=state["conversation_history"],
                    database_id=state["database_id"],
                    candidate_sql=candidate_sql,
                )
            )
            verification = output.verification
            state["llm_calls"] += output.metadata.llm_calls
        except AgentError as e:
            logger.warning(f"SQLVerifierAgent failed, treating statement as unsafe: {e}")
            verification = VerificationResult(is_safe=False, reasoning=VERIFIER_UNAVAILABLE_REASONING)
        state["verification"] = verification

        sql_key = "refinedSql" if state.get("sql_source") == SqlVersionReason.REFINED.value else "generatedSql"
        await self._audit(
            state, AuditAction.VERIFY, {sql_key: candidate_sql, **verification.model_dump()}
        )

        if not verification.is_safe:
            template = (
                UNSAFE_REFINEMENT_TEXT
                if state.get("sql_source") == SqlVersionReason.REFINED.value
                else UNSAFE_QUERY_TEXT
            )
            state["bot_message"] = ChatMessage(
                sender="bot",
                text=template.format(reasoning=verification.reasoning),
                is_error=True,
            )
        else:
            state["final_sql"] = verification.final_sql(candidate_sql)

        self._record_timing(state, "verifier", start_time)
        return state

    async def _run_executor(self, state: PipelineState) -> PipelineState:
        """Run SQLExecutorAgent on the verified statement."""
        start_time = time.time()
        state["current_agent"] = "SQLExecutorAgent"
        await self._emit(state, STEP_EXECUTING)

        final_sql = state["final_sql"]
        try:
            output = await self.executor(
                SQLExecutorInput(sql=final_sql, database_id=state["database_id"], user=state["user"])
            )
        except PermissionDeniedError as e:
            await self._audit(
                state,
                AuditAction.SECURITY_BLOCK,
                {"sql": final_sql, "role": state["user"].role.value, "reason": e.message},
            )
            state["bot_message"] = ChatMessage(sender="bot", text=PERMISSION_DENIED_TEXT, is_error=True)
            state["rejected"] = True
            return state
        except AgentError as e:
            logger.error(f"SQLExecutorAgent failed: {e}")
            execution = ExecutionResult(error=EXECUTION_FAILED_ERROR, details=e.message)
        else:
            execution = output.execution

        state["execution"] = execution
        metadata = execution.execution_metadata
        await self._audit(
            state,
            AuditAction.EXECUTE,
            {"sql": final_sql, "resultHash": metadata.result_hash if metadata else None},
        )

        if execution.failed:
            state["bot_message"] = ChatMessage(sender="bot", text=EXECUTION_FAILED_TEXT, is_error=True)
        elif execution.is_modification:
            state["bot_message"] = ChatMessage(
                sender="bot",
                text=MODIFICATION_DONE_TEXT.format(
                    operation=metadata.operation, row_count=metadata.row_count
                ),
                is_modification=True,
                execution_metadata=metadata,
            )

        self._record_timing(state, "executor", start_time)
        return state

    async def _run_visualization(self, state: PipelineState) -> PipelineState:
        """Run VisualizationAgent and compose the read-result bot message."""
        start_time = time.time()
        state["current_agent"] = "VisualizationAgent"
        await self._emit(state, STEP_VISUALIZING)

        execution = state["execution"]
        final_sql = state["final_sql"]
        try:
            output = await self.visualizer(
                VisualizationInput(
                    query=state["query"],
                    conversation_history=state["conversation_history"],
                    sql=final_sql,
                    execution_metadata=execution.execution_metadata,
                    sample=execution.sample or [],
                )
            )
            vis_package = output.vis_package
            state["llm_calls"] += output.metadata.llm_calls
        except AgentError as e:
            logger.warning(f"VisualizationAgent failed, using table fallback: {e}")
            vis_package = FALLBACK_PACKAGE.model_copy(deep=True)
        state["vis_package"] = vis_package

        refinement = state.get("refinement")
        was_refined = state.get("sql_source") == SqlVersionReason.REFINED.value
        text = vis_package.summary
        if was_refined and refinement and refinement.explanation:
            text = f"{refinement.explanation}\n\n{vis_package.summary}"

        state["bot_message"] = ChatMessage(
            sender="bot",
            text=text,
            executed_sql=final_sql,
            execution_metadata=execution.execution_metadata,
            masked_sample=execution.sample or [],
            vis_package=vis_package,
            verifier_output=state["verification"].model_dump(),
            is_modification=False,
            was_refined=True if was_refined else None,
        )

        # The version is recorded on the message whose statement was refined,
        # which is still the latest executed one at this point.
        if state.get("previous_sql"):
            if was_refined and refinement:
                reason = refinement.explanation or SqlVersionReason.REFINED.value
            else:
                reason = SqlVersionReason.REGENERATED.value
            await self.conversation_store.add_sql_version(state["conversation_id"], final_sql, reason)

        self._record_timing(state, "visualization", start_time)
        return state

    async def _run_interpreter(self, state: PipelineState) -> PipelineState:
        """Run ResultInterpreterAgent on the previous result."""
        start_time = time.time()
        state["current_agent"] = "ResultInterpreterAgent"
        await self._emit(state, STEP_INTERPRETING)

        try:
            output = await self.interpreter(
                ResultInterpreterInput(
                    query=state["query"],
                    conversation_history=state["conversation_history"],
                    last_result=state.get("last_result"),
                )
            )
            state["bot_message"] = ChatMessage(sender="bot", text=output.text)
            state["llm_calls"] += output.metadata.llm_calls
        except AgentError as e:
            logger.error(f"ResultInterpreterAgent failed: {e}")
            state["bot_message"] = ChatMessage(sender="bot", text=ASSISTANT_UNAVAILABLE_TEXT, is_error=True)

        self._record_timing(state, "interpreter", start_time)
        return state

    async def _run_conversation(self, state: PipelineState) -> PipelineState:
        """Run GeneralConversationAgent."""
        start_time = time.time()
        state["current_agent"] = "GeneralConversationAgent"
        await self._emit(state, STEP_CONVERSING)

        try:
            output = await self.conversation(
                AgentInput(query=state["query"], conversation_history=state["conversation_history"])
            )
            state["bot_message"] = ChatMessage(sender="bot", text=output.text)
            state["llm_calls"] += output.metadata.llm_calls
        except AgentError as e:
            logger.error(f"GeneralConversationAgent failed: {e}")
            state["bot_message"] = ChatMessage(sender="bot", text=ASSISTANT_UNAVAILABLE_TEXT, is_error=True)

        self._record_timing(state, "conversation", start_time)
        return state

    # ========================================================================
    # Routing
    # ========================================================================

    def _select_path(self, state: PipelineState) -> str:
        return state["intent"].value

    def _after_refiner(self, state: PipelineState) -> str:
        if state.get("bot_message") is not None:
            return "end"
        if state.get("refine_fallback"):
            return "regenerate"
        return "verify"

    @staticmethod
    def _continue_unless_finished(next_step: str) -> Callable[[PipelineState], str]:
        def decide(state: PipelineState) -> str:
            return "end" if state.get("bot_message") is not None else next_step

        return decide

    # ========================================================================
    # Turn execution
    # ========================================================================

    async def run(self, request: ChatRequest, user: CurrentUser) -> TurnResult:
        """
        Run one turn and wait for the terminal bot message.

        Raises:
            ConversationNotFoundError: If conversation_id is not the caller's
            StoreError: If the conversation store fails
        """
        return await self._execute_turn(request, user, streaming=False)

    async def run_with_streaming(
        self,
        request: ChatRequest,
        user: CurrentUser,
        event_callback: EventCallback | None = None,
    ) -> TurnResult:
        """
        Run one turn, reporting progress through ``event_callback``.

        The callback receives ("thinking", {"step": text}) once per stage.
        Callback failures (e.g. a disconnected client) are logged and the
        turn runs to completion.
        """
        return await self._execute_turn(request, user, streaming=True, event_callback=event_callback)

    async def _execute_turn(
        self,
        request: ChatRequest,
        user: CurrentUser,
        *,
        streaming: bool,
        event_callback: EventCallback | None = None,
    ) -> TurnResult:
        turn_id = uuid.uuid4().hex
        if event_callback is not None:
            self._stream_callbacks[turn_id] = event_callback

        serialize = bool(request.conversation_id) and self.config.pipeline.serialize_conversation_turns
        try:
            await self._emit({"turn_id": turn_id}, STEP_ANALYZING)
            if serialize:
                async with self._lock_for(request.conversation_id):
                    return await self._process_turn(turn_id, request, user, streaming)
            return await self._process_turn(turn_id, request, user, streaming)
        finally:
            self._stream_callbacks.pop(turn_id, None)
            if serialize:
                self._release_lock(request.conversation_id)

    async def _process_turn(
        self, turn_id: str, request: ChatRequest, user: CurrentUser, streaming: bool
    ) -> TurnResult:
        conversation = await self._resolve_conversation(request, user)
        conversation_id = conversation.id

        await self.conversation_store.append_message(
            conversation_id, ChatMessage(sender="user", text=request.prompt)
        )
        audit_context = {"user_id": user.user_id, "conversation_id": conversation_id}
        await self._audit(
            audit_context, AuditAction.ADD_MESSAGE, {"sender": "user", "prompt": request.prompt}
        )

        initial_state: PipelineState = {
            "turn_id": turn_id,
            "query": request.prompt,
            "conversation_history": list(request.conversation_history),
            "conversation_id": conversation_id,
            "database_id": request.database_id,
            "user": user,
            "last_result": request.last_result or self._last_result(conversation),
            "previous_sql": None,
            "refinement": None,
            "refine_fallback": False,
            "candidate_sql": None,
            "verification": None,
            "final_sql": None,
            "execution": None,
            "vis_package": None,
            "bot_message": None,
            "rejected": False,
            "current_agent": None,
            "agent_timings": {},
            "llm_calls": 0,
        }

        logger.info(
            "Starting turn",
            extra={"conversation_id": conversation_id, "database_id": request.database_id, "streaming": streaming},
        )
        start_time = time.time()

        if streaming:
            final_state: PipelineState = initial_state
            async for update in self.graph.astream(initial_state):
                for _node_name, state_update in update.items():
                    final_state = state_update
        else:
            final_state = await self.graph.ainvoke(initial_state)

        bot_message = final_state.get("bot_message") or ChatMessage(
            sender="bot", text=ASSISTANT_UNAVAILABLE_TEXT, is_error=True
        )
        await self.conversation_store.append_message(conversation_id, bot_message)
        await self._audit(
            audit_context, AuditAction.ADD_MESSAGE, {"sender": "bot", "text": bot_message.text}
        )

        total_time = (time.time() - start_time) * 1000
        logger.info(
            f"Turn complete in {total_time:.1f}ms ({final_state.get('llm_calls', 0)} LLM calls)",
            extra={
                "conversation_id": conversation_id,
                "intent": final_state["intent"].value if final_state.get("intent") else None,
                "agent_timings": final_state.get("agent_timings", {}),
            },
        )

        await self._maybe_generate_title(conversation, request, bot_message)
        return TurnResult(
            conversation_id=conversation_id,
            message=bot_message,
            rejected=bool(final_state.get("rejected")),
        )

    async def _resolve_conversation(self, request: ChatRequest, user: CurrentUser) -> Conversation:
        """Load the caller's conversation, or create one lazily on the first turn."""
        if request.conversation_id:
            conversation = await self.conversation_store.get_conversation(
                request.conversation_id, user_id=user.user_id
            )
            if conversation is None:
                raise ConversationNotFoundError(request.conversation_id)
            return conversation
        return await self.conversation_store.create_conversation(
            user_id=user.user_id, database_id=request.database_id
        )

    async def generate_title(self, conversation: Conversation) -> str | None:
        """Generate a title from a conversation's messages; None when unavailable."""
        try:
            output = await self.title_generator(
                AgentInput(query="", conversation_history=conversation.history())
            )
        except AgentError as e:
            logger.warning(f"Title generation failed: {e}")
            return None
        return output.title

    async def _maybe_generate_title(
        self, conversation: Conversation, request: ChatRequest, bot_message: ChatMessage
    ) -> None:
        message_count = len(conversation.messages) + 2
        if not conversation.has_default_title:
            return
        if message_count < self.config.pipeline.title_generation_min_messages:
            return

        snapshot = conversation.model_copy(
            update={
                "messages": [
                    *conversation.messages,
                    ChatMessage(sender="user", text=request.prompt),
                    bot_message,
                ]
            }
        )
        title = await self.generate_title(snapshot)
        if not title:
            return
        try:
            await self.conversation_store.set_title_if_default(conversation.id, title)
        except Exception as e:
            logger.warning(f"Failed to store generated title: {e}")

    @staticmethod
    def _last_result(conversation: Conversation) -> dict[str, Any] | None:
        for message in reversed(conversation.messages):
            if message.execution_metadata is not None and message.masked_sample is not None:
                return {
                    "executionMetadata": message.execution_metadata.to_payload(),
                    "maskedSample": message.masked_sample,
                }
        return None

    # ========================================================================
    # Helpers
    # ========================================================================

    async def _emit(self, state: PipelineState, step: str) -> None:
        """Send a thinking step to the turn's stream, if it has one."""
        callback = self._stream_callbacks.get(state.get("turn_id", ""))
        if callback is None:
            return
        try:
            await callback("thinking", {"step": step})
        except Exception as e:
            logger.warning(f"Dropped thinking step '{step}': {e}")

    async def _audit(self, state: dict[str, Any], action: AuditAction, details: dict[str, Any]) -> None:
        user = state.get("user")
        user_id = user.user_id if isinstance(user, CurrentUser) else state.get("user_id")
        try:
            await self.audit_log.log(
                action,
                user_id=user_id,
                conversation_id=state.get("conversation_id"),
                details=details,
            )
        except Exception as e:
            logger.warning(f"Audit write for {action.value} failed: {e}")

    def _record_timing(self, state: PipelineState, name: str, start_time: float) -> None:
        elapsed = (time.time() - start_time) * 1000
        state["agent_timings"][name] = elapsed
        logger.debug(f"{state.get('current_agent')} complete in {elapsed:.1f}ms")

    def _lock_for(self, conversation_id: str) -> asyncio.Lock:
        # Locks are reference counted so that waiting turns keep sharing one lock.
        lock, users = self._conversation_locks.get(conversation_id, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._conversation_locks[conversation_id] = (lock, users + 1)
        return lock

    def _release_lock(self, conversation_id: str) -> None:
        lock, users = self._conversation_locks[conversation_id]
        if users <= 1:
            del self._conversation_locks[conversation_id]
        else:
            self._conversation_locks[conversation_id] = (lock, users - 1)


# ============================================================================
# Helper Functions
# ============================================================================


async def create_pipeline() -> QueryCompassPipeline:
    """
    Create a QueryCompassPipeline with its stores initialized from settings.

    Each agent builds its own provider, honoring the per-agent overrides
    in LLMSettings.

    Returns:
        Initialized pipeline
    """
    config = get_settings()

    conversation_store = ConversationStore()
    await conversation_store.initialize()
    audit_log = AuditLogStore()
    await audit_log.initialize()

    return QueryCompassPipeline(
        conversation_store=conversation_store,
        audit_log=audit_log,
        pool_manager=DatabasePoolManager(config.database),
    )
