"""
Legacy workflow conversion.

Older workflows stored only an ordered list of agent ids. They run as a
chain of agent steps where each agent receives the previous agent's
response as its prompt.
"""

from typing import Any, Dict, List, Optional, Sequence

from schemas.workflow import AgentStepConfig, StepType, WorkflowStep


def convert_legacy_workflow(
    agents: Sequence[str],
    configuration: Optional[Dict[str, Any]] = None
) -> List[WorkflowStep]:
    """
    Convert a legacy agents array into chained agent steps.

    Step ids are `step-1` .. `step-N`. The first step prompts with
    `{{input.prompt}}`; each later step prompts with the previous step's
    response.
    """
    enable_tools = bool((configuration or {}).get("enableTools", False))
    steps: List[WorkflowStep] = []

    for index, agent_id in enumerate(agents):
        if index == 0:
            prompt = "{{input.prompt}}"
        else:
            prompt = "{{step-%d.response}}" % index

        steps.append(WorkflowStep(
            id=f"step-{index + 1}",
            type=StepType.AGENT,
            name=f"Agent Step {index + 1}",
            config=AgentStepConfig(
                agent_id=agent_id,
                input={"prompt": prompt},
                enable_tools=enable_tools,
            ),
            on_success=f"step-{index + 2}" if index < len(agents) - 1 else None,
        ))

    return steps
