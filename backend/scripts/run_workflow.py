"""
Run a workflow definition from a JSON file.

Run with: python -m scripts.run_workflow <workflow.json> [input-json]

The file holds either a list of step definitions, an object with a "steps"
list, or a legacy object with an "agents" list (and optional
"configuration"). Input JSON becomes the `input` variable.
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import asyncio
import json
import logging
import uuid

from config import settings
from schemas.workflow import WorkflowExecutionContext, parse_workflow_steps
from workflows.engine import EngineEvent, WorkflowEngine
from workflows.legacy import convert_legacy_workflow


def load_steps(definition):
    if isinstance(definition, list):
        return parse_workflow_steps(definition)
    if definition.get("steps"):
        return parse_workflow_steps(definition["steps"])
    return convert_legacy_workflow(definition.get("agents", []), definition.get("configuration"))


def print_event(event: EngineEvent):
    print(f"[{event.type.value}] {event.step_id or ''} {json.dumps(event.data, default=str)}")


async def run(path: str, workflow_input: dict):
    with open(path) as f:
        definition = json.load(f)

    steps = load_steps(definition)
    context = WorkflowExecutionContext(
        workflow_id=os.path.splitext(os.path.basename(path))[0],
        run_id=uuid.uuid4().hex,
        org_id=os.environ.get("WORKFLOW_ORG_ID", "local"),
        user_id=os.environ.get("WORKFLOW_USER_ID", "local"),
        variables={"input": workflow_input},
    )

    engine = WorkflowEngine(listener=print_event)
    result = await engine.execute_workflow(steps, context)

    print(f"\n{'='*50}")
    print(f"RESULT: {'SUCCESS' if result.success else 'FAILED'} in {result.total_execution_time_ms}ms")
    print(f"{'='*50}")
    print(json.dumps([r.to_dict() for r in result.results], indent=2, default=str))
    print(f"\n{'='*50}")
    print("VARIABLES:")
    print(f"{'='*50}")
    print(json.dumps(dict(context.variables), indent=2, default=str))

    return result


def main():
    logging.basicConfig(level=settings.LOG_LEVEL)

    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(2)

    path = sys.argv[1]
    workflow_input = json.loads(sys.argv[2]) if len(sys.argv) > 2 else {}

    result = asyncio.run(run(path, workflow_input))
    sys.exit(0 if result.success else 1)


if __name__ == "__main__":
    main()
