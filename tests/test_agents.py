import asyncio
import pytest
from unittest.mock import AsyncMock, patch
from plan_guard.agents import AgentRegistry, score_agent
from plan_guard.errors import DuplicateNameError, UnknownAgentError
from plan_guard.models import Agent, AgentMetadata, ParsedIntent


def _make_agent(name, category="general", keywords=(), capabilities=(), priority=0, handle=None):
    async def default_handle(text, user_id):
        return f"{name}:{text}"

    return Agent(
        metadata=AgentMetadata(
            name=name,
            description=f"{name} agent",
            category=category,
            version="1.0.0",
            keywords=list(keywords),
            capabilities=list(capabilities),
            priority=priority,
        ),
        handle=handle or default_handle,
    )

# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

def test_category_match_beats_higher_priority_keyword_hit():
    defi = _make_agent("defi", category="defi", keywords=["swap"], priority=10)
    general = _make_agent("general", category="general", keywords=["balance"], priority=5)
    intent = ParsedIntent(category="general", keywords=["swap"])

    assert score_agent(general, intent) == pytest.approx(150)
    assert score_agent(defi, intent) == pytest.approx(30)

    registry = AgentRegistry()
    registry.register(defi)
    registry.register(general)
    assert registry.get_agent_by_intent(intent).name == "general"

def test_partial_and_capability_matches():
    agent = _make_agent("trader", keywords=["swapping"], capabilities=["token swap execution"])
    intent = ParsedIntent(keywords=["SWAP"])
    # partial keyword (5) + capability substring (8)
    assert score_agent(agent, intent) == pytest.approx(13)

def test_confidence_scales_score():
    agent = _make_agent("general", category="general")
    assert score_agent(agent, ParsedIntent(category="general", confidence=0.5)) == pytest.approx(50)
    assert score_agent(agent, ParsedIntent(category="general", confidence=0)) == 0

def test_confidence_out_of_range_rejected():
    with pytest.raises(ValueError):
        ParsedIntent(confidence=1.5)

# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

def test_ties_go_to_first_registered():
    registry = AgentRegistry()
    registry.register(_make_agent("first", keywords=["balance"]))
    registry.register(_make_agent("second", keywords=["balance"]))
    assert registry.get_agent_by_intent(ParsedIntent(keywords=["balance"])).name == "first"

def test_fallback_to_default_agent():
    registry = AgentRegistry()
    registry.register(_make_agent("first", category="defi"))
    registry.register(_make_agent("fallback", category="general"))
    registry.set_default_agent("fallback")

    agent = registry.get_agent_by_intent(ParsedIntent(keywords=["weather"]))
    assert agent.name == "fallback"
    assert registry.get_entry("fallback").last_used is not None

def test_disabled_default_falls_back_to_first_enabled():
    registry = AgentRegistry()
    registry.register(_make_agent("first", category="defi"))
    registry.register(_make_agent("fallback", category="general"))
    registry.set_default_agent("fallback")
    registry.set_agent_enabled("fallback", False)

    assert registry.get_agent_by_intent(ParsedIntent(keywords=["weather"])).name == "first"

def test_no_enabled_agents_returns_none():
    registry = AgentRegistry()
    assert registry.get_agent_by_intent(ParsedIntent(category="general")) is None

    registry.register(_make_agent("only"))
    registry.set_agent_enabled("only", False)
    assert registry.get_agent_by_intent(ParsedIntent(category="general")) is None

@patch("plan_guard.agents.display")
def test_selection_reported_through_display(mock_display):
    registry = AgentRegistry()
    registry.register(_make_agent("general", category="general"))
    registry.get_agent_by_intent(ParsedIntent(category="general"))
    mock_display.agent_selected.assert_called_once_with("general", 100, "general")

# ---------------------------------------------------------------------------
# Registration and lookup
# ---------------------------------------------------------------------------

def test_duplicate_agent_rejected():
    registry = AgentRegistry()
    registry.register(_make_agent("general"))
    with pytest.raises(DuplicateNameError, match="Agent 'general' is already registered"):
        registry.register(_make_agent("general"))
    assert registry.get_stats().total == 1

def test_set_default_agent_unknown():
    registry = AgentRegistry()
    with pytest.raises(UnknownAgentError):
        registry.set_default_agent("ghost")

def test_unregister_clears_default():
    registry = AgentRegistry()
    registry.register(_make_agent("general"))
    registry.set_default_agent("general")
    assert registry.unregister("general") is True
    assert registry.default_agent is None

def test_lookup_projections():
    registry = AgentRegistry()
    registry.register(_make_agent("defi", category="defi", capabilities=["token swaps"]))
    registry.register(_make_agent("general", category="general", keywords=["help"]))
    registry.register(_make_agent("news", category="general"))
    registry.set_agent_enabled("news", False)

    assert registry.get_categories() == ["defi", "general"]
    assert [a.name for a in registry.get_agents_by_category("general")] == ["general"]
    assert [a.name for a in registry.search_agents("SWAP")] == ["defi"]
    assert [a.name for a in registry.search_agents("help")] == ["general"]
    assert registry.get_agent("news") is None

    stats = registry.get_stats()
    assert (stats.total, stats.enabled, stats.categories) == (3, 2, 2)
    assert stats.by_category == {"defi": 1, "general": 1}

# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

def test_dispatch_hands_raw_input_to_agent():
    handle = AsyncMock(return_value="done")
    registry = AgentRegistry()
    registry.register(_make_agent("general", category="general", handle=handle))

    result = asyncio.run(registry.dispatch(ParsedIntent(category="general", raw_input="check balance"), "user-1"))

    assert result == "done"
    handle.assert_awaited_once_with("check balance", "user-1")

def test_dispatch_without_agents():
    registry = AgentRegistry()
    with pytest.raises(UnknownAgentError):
        asyncio.run(registry.dispatch(ParsedIntent(raw_input="hi"), "user-1"))

# ---------------------------------------------------------------------------
# Removal and unusual names
# ---------------------------------------------------------------------------

def test_unregister_prunes_empty_category():
    registry = AgentRegistry()
    registry.register(_make_agent("defi", category="defi"))
    registry.register(_make_agent("general", category="general"))

    registry.unregister("defi")
    assert registry.get_categories() == ["general"]
    assert registry.get_stats().categories == 1

def test_bracketed_agent_names_route():
    registry = AgentRegistry()
    registry.register(_make_agent("odd[/x]", category="cat[/y]"))
    assert registry.get_agent_by_intent(ParsedIntent(category="cat[/y]")).name == "odd[/x]"
    assert registry.get_agent_by_intent(ParsedIntent(keywords=["nothing"])).name == "odd[/x]"
