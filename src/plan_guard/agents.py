# agents.py
# Agent registry: routes a parsed intent to the best-matching specialised agent.
# Used upstream of planning; it has no dependency on tools or plans.

from datetime import datetime, timezone
from typing import Any

from plan_guard import display
from plan_guard.errors import DuplicateNameError, RegistrationError, UnknownAgentError
from plan_guard.models import Agent, AgentRegistryEntry, ParsedIntent, RegistryStats

CATEGORY_MATCH = 100
KEYWORD_EXACT = 10
KEYWORD_PARTIAL = 5
CAPABILITY_MATCH = 8
PRIORITY_WEIGHT = 0.1


def score_agent(agent: Agent, intent: ParsedIntent) -> float:
    """
    Relevance of `agent` for `intent`.

    Category equality dominates. Each intent keyword then earns points for an
    exact keyword hit, a substring hit in either direction (an exact hit
    earns both), and a substring hit inside any capability. The sum is scaled
    by priority and, when given, by the intent's confidence.
    """
    meta = agent.metadata
    score = 0.0

    if intent.category and meta.category == intent.category:
        score += CATEGORY_MATCH

    intent_keywords = [k.lower() for k in intent.keywords]
    agent_keywords = [k.lower() for k in meta.keywords]
    capabilities = [c.lower() for c in meta.capabilities]

    for keyword in intent_keywords:
        if keyword in agent_keywords:
            score += KEYWORD_EXACT
        if any(ak in keyword or keyword in ak for ak in agent_keywords):
            score += KEYWORD_PARTIAL
        if any(keyword in cap for cap in capabilities):
            score += CAPABILITY_MATCH

    score *= 1 + meta.priority * PRIORITY_WEIGHT

    if intent.confidence is not None:
        score *= intent.confidence

    return score


class AgentRegistry:
    """Catalog of agents with intent-based selection and a configurable fallback."""

    def __init__(self) -> None:
        self._agents: dict[str, AgentRegistryEntry] = {}
        self._categories: dict[str, None] = {}
        self._default_agent: str | None = None

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, agent: Agent) -> None:
        if not isinstance(agent, Agent):
            raise RegistrationError(f"Expected an Agent, got {type(agent).__name__}")
        name = agent.name
        if name in self._agents:
            raise DuplicateNameError("Agent", name)

        self._agents[name] = AgentRegistryEntry(agent=agent)
        self._categories[agent.metadata.category] = None
        display.agent_registered(name, agent.metadata.category)

    def unregister(self, agent_name: str) -> bool:
        entry = self._agents.pop(agent_name, None)
        if entry is None:
            return False
        category = entry.agent.metadata.category
        if not any(e.agent.metadata.category == category for e in self._agents.values()):
            self._categories.pop(category, None)
        if self._default_agent == agent_name:
            self._default_agent = None
        return True

    def set_default_agent(self, agent_name: str) -> None:
        if agent_name not in self._agents:
            raise UnknownAgentError(f"Agent '{agent_name}' not found in registry")
        self._default_agent = agent_name

    @property
    def default_agent(self) -> str | None:
        return self._default_agent

    def set_agent_enabled(self, agent_name: str, enabled: bool) -> bool:
        entry = self._agents.get(agent_name)
        if entry is None:
            return False
        entry.enabled = enabled
        return True

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_agent(self, agent_name: str) -> Agent | None:
        entry = self._agents.get(agent_name)
        return entry.agent if entry is not None and entry.enabled else None

    def get_entry(self, agent_name: str) -> AgentRegistryEntry | None:
        entry = self._agents.get(agent_name)
        return entry.model_copy() if entry is not None else None

    def get_all_agents(self) -> list[Agent]:
        return [entry.agent for entry in self._agents.values() if entry.enabled]

    def get_agents_by_category(self, category: str) -> list[Agent]:
        return [a for a in self.get_all_agents() if a.metadata.category == category]

    def get_categories(self) -> list[str]:
        return list(self._categories)

    def search_agents(self, query: str) -> list[Agent]:
        q = query.lower()
        return [
            a
            for a in self.get_all_agents()
            if q in a.metadata.name.lower()
            or q in a.metadata.description.lower()
            or any(q in cap.lower() for cap in a.metadata.capabilities)
            or any(q in kw.lower() for kw in a.metadata.keywords)
        ]

    def get_stats(self) -> RegistryStats:
        enabled = self.get_all_agents()
        by_category: dict[str, int] = {}
        for agent in enabled:
            by_category[agent.metadata.category] = by_category.get(agent.metadata.category, 0) + 1
        return RegistryStats(
            total=len(self._agents),
            enabled=len(enabled),
            categories=len(self._categories),
            by_category=by_category,
        )

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def _touch(self, entry: AgentRegistryEntry) -> Agent:
        entry.last_used = datetime.now(timezone.utc)
        return entry.agent

    def get_agent_by_intent(self, intent: ParsedIntent) -> Agent | None:
        """
        Best-scoring enabled agent for `intent`.

        Ties go to the agent registered first. When nothing scores above
        zero, fall back to the default agent (if enabled), then to the first
        enabled agent. Returns None only when no agent is enabled.
        """
        enabled = [entry for entry in self._agents.values() if entry.enabled]
        if not enabled:
            display.no_agents_available()
            return None

        best: AgentRegistryEntry | None = None
        best_score = 0.0
        for entry in enabled:
            score = score_agent(entry.agent, intent)
            if best is None or score > best_score:
                best, best_score = entry, score

        if best is not None and best_score > 0:
            display.agent_selected(best.agent.name, best_score, intent.category)
            return self._touch(best)

        if self._default_agent is not None:
            default = self._agents.get(self._default_agent)
            if default is not None and default.enabled:
                display.agent_fallback(default.agent.name, "default agent")
                return self._touch(default)

        display.agent_fallback(enabled[0].agent.name, "first available")
        return self._touch(enabled[0])

    async def dispatch(self, intent: ParsedIntent, user_id: str) -> Any:
        """Route `intent` and hand its raw input to the selected agent."""
        agent = self.get_agent_by_intent(intent)
        if agent is None:
            raise UnknownAgentError("No enabled agent is available to handle the request")
        return await agent.handle(intent.raw_input, user_id)
