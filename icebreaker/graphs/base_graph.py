"""Base class for linear LangGraph pipelines."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Callable

from langgraph.graph import StateGraph

from icebreaker.utils.logging_config import logger

Node = Callable[[dict], dict]


class BaseGraph(ABC):
    """Shared wiring for pipelines whose nodes run one after another.

    Subclasses list their nodes in order. Once a node records ``error`` in
    the state, the remaining nodes pass the state through untouched, except
    those named in ``always_run``.
    """

    always_run: frozenset[str] = frozenset()

    def __init__(self):
        self.logger = logger

    @property
    @abstractmethod
    def state_schema(self) -> type:
        """TypedDict describing the pipeline state."""

    @abstractmethod
    def nodes(self) -> list[tuple[str, Node]]:
        """Return (name, node) pairs in execution order."""

    def build_graph(self) -> StateGraph:
        """Build the StateGraph with nodes chained in declaration order."""

        steps = self.nodes()
        graph = StateGraph(self.state_schema)
        for name, node in steps:
            graph.add_node(name, self._guarded(name, node))

        graph.set_entry_point(steps[0][0])
        for (current, _), (following, _) in zip(steps, steps[1:]):
            graph.add_edge(current, following)
        graph.set_finish_point(steps[-1][0])
        return graph

    def _guarded(self, name: str, node: Node) -> Node:
        def run(state: dict) -> dict:
            if state.get("error") and name not in self.always_run:
                return state

            self._log_node_execution(name, state)
            started = time.perf_counter()
            result = node(state)
            self.logger.debug(
                "Node %s finished in %.1fms", name, (time.perf_counter() - started) * 1000
            )
            return result

        run.__name__ = name
        return run

    def _log_node_execution(self, node_name: str, state: dict) -> None:
        self.logger.debug(
            "Executing node: %s subject=%s", node_name, state.get("subject_id")
        )

    def _log_node_error(self, node_name: str, error: Exception) -> None:
        """Log node failure without leaking profile data."""

        self.logger.error("Node %s failed: %s", node_name, str(error))

    def compile(self):
        return self.build_graph().compile()
