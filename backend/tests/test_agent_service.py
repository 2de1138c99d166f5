"""Tests for agent lookup."""

import pytest

import services.agent_service as agent_service
from models import Agent, AgentType
from services.agent_service import AgentDefinition, AgentNotFoundError, AgentService


@pytest.fixture
def stored_agent(db_session):
    agent = Agent(
        agent_id="agent-1",
        org_id="org-1",
        name="Researcher",
        type=AgentType.RESEARCH,
        configuration={"systemPrompt": "Be thorough.", "model": "claude-test", "temperature": 0, "maxTokens": 500},
    )
    db_session.add(agent)
    db_session.commit()
    return agent


class TestAgentService:

    def test_get_definition(self, db_session, stored_agent):
        definition = AgentService(db_session, "org-1").get_definition("agent-1")

        assert definition == AgentDefinition(
            agent_id="agent-1",
            type="RESEARCH",
            name="Researcher",
            configuration={"systemPrompt": "Be thorough.", "model": "claude-test", "temperature": 0, "maxTokens": 500},
        )
        assert definition.system_prompt == "Be thorough."
        assert definition.model == "claude-test"
        assert definition.temperature == 0
        assert definition.max_tokens == 500

    def test_scoped_to_org(self, db_session, stored_agent):
        assert AgentService(db_session, "org-2").get_definition("agent-1") is None

    def test_unknown_agent(self, db_session):
        assert AgentService(db_session, "org-1").get_agent("ghost") is None

    def test_lookup_agent_uses_own_session(self, db_session, stored_agent, monkeypatch):
        monkeypatch.setattr(agent_service, "SessionLocal", lambda: db_session)
        definition = agent_service.lookup_agent("agent-1", "org-1")
        assert definition.name == "Researcher"


def test_agent_definition_defaults():
    definition = AgentDefinition(agent_id="a", type="CUSTOM", name="n")
    assert definition.system_prompt is None
    assert definition.max_tokens is None


def test_not_found_message():
    assert str(AgentNotFoundError("x")) == "Agent not found: x"
