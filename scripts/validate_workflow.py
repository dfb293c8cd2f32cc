"""Script to check a workflow graph and print its states and transitions
Run: python -m scripts.validate_workflow <workflow_id>
"""
import sys

from statecraft.domain.errors import WorkflowNotFoundError
from statecraft.engine.factory import build_engine


def validate_workflow(workflow_id: str) -> bool:
    graph_store = build_engine().graph
    try:
        graph = graph_store.graph(workflow_id)
    except WorkflowNotFoundError:
        print(f"Workflow {workflow_id} not found")
        return False

    print(f"Workflow: {graph.workflow.label} ({workflow_id})")
    print()
    print("=" * 60)
    print("STATES")
    print("=" * 60)
    for state in graph.states:
        flags = []
        if state.is_creation:
            flags.append("creation")
        if not state.active:
            flags.append("inactive")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        print(f"  {state.weight:>5}  {state.state_id}: {state.label}{suffix}")

    print()
    print("=" * 60)
    print("TRANSITIONS")
    print("=" * 60)
    for edge in graph.edges:
        roles = ", ".join(edge.roles) or "(no roles)"
        print(f"  {edge.from_sid} -> {edge.to_sid}  [{roles}]")

    print()
    valid = graph_store.is_valid(workflow_id)
    print("Workflow is usable" if valid else "Workflow is NOT usable (see warnings above)")
    return valid


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python -m scripts.validate_workflow <workflow_id>")
        sys.exit(2)
    sys.exit(0 if validate_workflow(sys.argv[1]) else 1)
