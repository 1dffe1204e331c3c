"""
Dashboard Assistant Agent
LangGraph-based agent answering chat questions about the loaded RCM data.
"""
#rcm_dashboard/agents/assistant_agent.py
import logging
import time
from typing import Any, Dict, List, Optional, TypedDict

from langgraph.graph import StateGraph, END
from langchain_openai import ChatOpenAI
from langchain_core.messages import HumanMessage, SystemMessage

from rcm_dashboard.data_processing.dataset_manager import Dataset
from rcm_dashboard.services.aggregation_service import AggregationService, ViewRequest
from rcm_dashboard.tools.kpi_metrics_tools import (
    KPIMetricsTools,
    create_kpi_metrics_tool_functions,
    detect_metric,
)
from rcm_dashboard.utils.logger import ProvenanceLogger

logger = logging.getLogger(__name__)

BOT_ERROR_MESSAGE = "Error contacting bot."
GENERAL_INTENT = "general"

SYSTEM_PROMPT = """You are an assistant embedded in a healthcare revenue cycle management (RCM) dashboard.
Answer questions about the practice's KPIs using only the figures below. Be concise and
use markdown. If the figures do not answer the question, say so instead of guessing.

Glossary:
- GCR (Gross Collection Rate): payments / billed charges
- NCR (Net Collection Rate): payments / (billed - adjustments)
- Denial Rate: denied claims / all claims
- FPR (First Pass Rate): claims paid on first submission
- CCR (Clean Claim Rate): claims submitted without errors
- Days in AR: average age of open accounts receivable
- Charge Lag: days from service to charge entry; Billing Lag: days from service to submission

Current dashboard figures:
{kpi_context}"""


# ===== State Definition =====

class AgentState(TypedDict):
    """State for the dashboard assistant."""
    # Input
    message: str
    chat_history: List[Dict[str, str]]
    tools: KPIMetricsTools

    # Routing
    intent: Optional[str]
    kpi_context: str

    # Response
    answer: str
    success: bool
    error: Optional[str]
    metadata: Dict[str, Any]


# ===== Agent Class =====

class AssistantAgent:
    """LangGraph agent for dashboard chat questions."""

    def __init__(
        self,
        service: AggregationService,
        openai_api_key: str = "",
        model: str = "gpt-4o-mini",
        temperature: float = 0.1,
        llm: Optional[Any] = None,
        provenance_logger: Optional[ProvenanceLogger] = None
    ):
        """
        Initialize the assistant.

        Args:
            service: Aggregation service supplying the dashboard figures
            openai_api_key: OpenAI API key
            model: OpenAI model name
            temperature: LLM temperature
            llm: Chat model to use instead of ChatOpenAI
            provenance_logger: Audit log for exchanges, if any
        """
        self.service = service
        self.openai_api_key = openai_api_key
        self.model = model
        self.temperature = temperature
        self._llm = llm
        self.provenance_logger = provenance_logger

        # Build graph
        self.graph = self._build_graph()

    @property
    def llm(self):
        """Chat model, created on first general question."""
        if self._llm is None:
            if not self.openai_api_key:
                raise RuntimeError("OPENAI_API_KEY not configured")
            self._llm = ChatOpenAI(
                api_key=self.openai_api_key,
                model=self.model,
                temperature=self.temperature
            )
        return self._llm

    def _build_graph(self) -> StateGraph:
        """Build the LangGraph workflow."""
        workflow = StateGraph(AgentState)

        # Add nodes
        workflow.add_node("detect_intent", self.detect_intent_node)
        workflow.add_node("answer_metric", self.answer_metric_node)
        workflow.add_node("build_context", self.build_context_node)
        workflow.add_node("generate_answer", self.generate_answer_node)
        workflow.add_node("handle_error", self.handle_error_node)

        # Entry point
        workflow.set_entry_point("detect_intent")

        # Metric questions skip the LLM
        workflow.add_conditional_edges(
            "detect_intent",
            self.route_by_intent,
            {
                "metric": "answer_metric",
                "general": "build_context",
                "error": "handle_error"
            }
        )

        workflow.add_conditional_edges(
            "answer_metric",
            self.check_answer,
            {
                "done": END,
                "error": "handle_error"
            }
        )
        workflow.add_conditional_edges(
            "build_context",
            self.check_answer,
            {
                "done": "generate_answer",
                "error": "handle_error"
            }
        )
        workflow.add_conditional_edges(
            "generate_answer",
            self.check_answer,
            {
                "done": END,
                "error": "handle_error"
            }
        )
        workflow.add_edge("handle_error", END)

        return workflow.compile()

    # ===== Nodes =====

    def detect_intent_node(self, state: AgentState) -> AgentState:
        """Map the message to a metric tool, or mark it as a general question."""
        message = (state["message"] or "").strip()
        if not message:
            state["error"] = "Empty message"
            return state

        state["intent"] = detect_metric(message) or GENERAL_INTENT
        logger.info(f"Detected intent: {state['intent']}")
        return state

    def answer_metric_node(self, state: AgentState) -> AgentState:
        """Answer directly from the KPI tools."""
        tool_functions = create_kpi_metrics_tool_functions(state["tools"])
        try:
            state["answer"] = tool_functions[state["intent"]]()
            state["success"] = True
            state["metadata"] = {"tool": state["intent"]}
        except Exception as e:
            logger.error(f"Metric tool {state['intent']} failed: {e}", exc_info=True)
            state["error"] = str(e)
        return state

    def build_context_node(self, state: AgentState) -> AgentState:
        try:
            state["kpi_context"] = state["tools"].context_summary()
        except Exception as e:
            logger.error(f"Could not build KPI context: {e}", exc_info=True)
            state["error"] = str(e)
        return state

    def generate_answer_node(self, state: AgentState) -> AgentState:
        """Ask the LLM, grounding it with the current dashboard figures."""
        logger.info("Generating answer with LLM...")

        system_prompt = SYSTEM_PROMPT.format(kpi_context=state["kpi_context"])
        history = self._format_chat_history(state["chat_history"])
        user_prompt = state["message"] if not history else f"{history}\n\nUser: {state['message']}"

        try:
            response = self.llm.invoke([
                SystemMessage(content=system_prompt),
                HumanMessage(content=user_prompt)
            ])
            answer = (response.content or "").strip()
            if not answer:
                state["error"] = "Empty LLM response"
                return state

            state["answer"] = answer
            state["success"] = True
            state["metadata"] = {"model": self.model}
        except Exception as e:
            logger.error(f"LLM call failed: {e}")
            state["error"] = str(e)
        return state

    def handle_error_node(self, state: AgentState) -> AgentState:
        """Replace the answer with the chat panel's error text."""
        error_msg = state.get("error") or "An unknown error occurred"
        logger.warning(f"Assistant failed with error: {error_msg}")

        state["answer"] = BOT_ERROR_MESSAGE
        state["success"] = False
        state["metadata"] = {"error": error_msg, "intent": state.get("intent")}
        return state

    # ===== Conditional edges =====

    def route_by_intent(self, state: AgentState) -> str:
        if state.get("error"):
            return "error"
        if state["intent"] == GENERAL_INTENT:
            return "general"
        return "metric"

    def check_answer(self, state: AgentState) -> str:
        return "error" if state.get("error") else "done"

    # ===== Helpers =====

    def _format_chat_history(self, chat_history: List[Dict[str, str]]) -> str:
        """Last few exchanges as plain text."""
        if not chat_history:
            return ""

        lines = []
        for entry in chat_history[-6:]:
            role = "User" if entry.get("role") == "user" else "Assistant"
            lines.append(f"{role}: {entry.get('content', '')}")
        return "\n".join(lines)

    def ask(
        self,
        message: str,
        dataset: Dataset,
        request: Optional[ViewRequest] = None,
        session_id: Optional[str] = None,
        chat_history: Optional[List[Dict[str, str]]] = None
    ) -> Dict[str, Any]:
        """
        Answer a chat message about a session's data.

        Args:
            message: User message
            dataset: Session dataset the figures come from
            request: Client and date range (default: dataset client, default range)
            session_id: Dashboard session ID, for the audit log
            chat_history: Previous chat messages

        Returns:
            Dictionary with answer, intent, metadata and success
        """
        start_time = time.time()
        if request is None:
            request = ViewRequest(client_id=dataset.client_id) if dataset.client_id else ViewRequest()

        initial_state = {
            "message": message,
            "chat_history": chat_history or [],
            "tools": KPIMetricsTools(self.service, dataset, request),
            "intent": None,
            "kpi_context": "",
            "answer": "",
            "success": False,
            "error": None,
            "metadata": {}
        }

        try:
            final_state = self.graph.invoke(initial_state)
            result = {
                "answer": final_state.get("answer") or BOT_ERROR_MESSAGE,
                "intent": final_state.get("intent"),
                "metadata": final_state.get("metadata", {}),
                "success": final_state.get("success", False)
            }
        except Exception as e:
            logger.error(f"Assistant graph failed: {e}", exc_info=True)
            result = {
                "answer": BOT_ERROR_MESSAGE,
                "intent": None,
                "metadata": {"error": str(e)},
                "success": False
            }

        if self.provenance_logger is not None:
            self.provenance_logger.log_exchange(
                session_id=session_id,
                message=message,
                response=result["answer"],
                intent=result["intent"],
                success=result["success"],
                execution_time=time.time() - start_time,
                error=result["metadata"].get("error"),
                metadata={"client_id": request.client_id}
            )

        return result
