"""State definitions for the tool-calling loop graph."""
from typing import Annotated, Any, Dict, List, TypedDict
from langchain_core.messages import BaseMessage
import operator


class LoopState(TypedDict):
    """State schema for one tool-calling loop run.

    Attributes:
        messages: Conversation so far, without the system message
        system_prompt: Composed system prompt; empty means none is sent
        tool_names: Registry names offered to the model
        rounds: Completed tool execution rounds
        last_results: Raw results of the most recent round
    """
    # Conversation - append-only
    messages: Annotated[List[BaseMessage], operator.add]

    system_prompt: str

    tool_names: List[str]

    rounds: int

    # [{"id", "name", "args", "result"}], replaced each round
    last_results: List[Dict[str, Any]]
