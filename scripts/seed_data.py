"""
Seed Data Script - Creates a sample publishing workflow
Run: python -m scripts.seed_data
"""
from statecraft.domain.models import (
    WorkflowDefinition, WorkflowSettings, StateDefinition, EdgeDefinition, OWNER_ROLE
)
from statecraft.domain.enums import CommentRequirement
from statecraft.engine.factory import build_engine
from statecraft.repositories.mongo_client import create_indexes
from statecraft.utils.idgen import creation_state_id

WORKFLOW_ID = "publishing"


def sample_definition() -> WorkflowDefinition:
    """Creation -> Draft -> Review -> Published, with an editor-only publish step"""
    creation = creation_state_id(WORKFLOW_ID)
    draft = f"{WORKFLOW_ID}_draft"
    review = f"{WORKFLOW_ID}_review"
    published = f"{WORKFLOW_ID}_published"

    return WorkflowDefinition(
        workflow_id=WORKFLOW_ID,
        label="Publishing",
        settings=WorkflowSettings(comment_requirement=CommentRequirement.OPTIONAL),
        states=[
            StateDefinition(state_id=creation, label="Creation", weight=-50, is_creation=True),
            StateDefinition(state_id=draft, label="Draft", weight=0),
            StateDefinition(state_id=review, label="Review", weight=10),
            StateDefinition(state_id=published, label="Published", weight=20),
        ],
        transitions=[
            EdgeDefinition(from_sid=creation, to_sid=draft, roles=[OWNER_ROLE, "author", "editor"]),
            EdgeDefinition(from_sid=draft, to_sid=review, roles=[OWNER_ROLE, "author"]),
            EdgeDefinition(from_sid=review, to_sid=draft, roles=["editor"]),
            EdgeDefinition(from_sid=review, to_sid=published, roles=["editor"]),
            EdgeDefinition(from_sid=published, to_sid=draft, roles=["editor"]),
        ],
    )


def create_sample_workflow():
    components = build_engine()
    if components.graph.find_workflow(WORKFLOW_ID) is not None:
        print(f"Workflow '{WORKFLOW_ID}' already exists. Skipping seed.")
        return

    graph = components.graph.import_workflow(sample_definition())
    print(f"Created workflow '{WORKFLOW_ID}' with {len(graph.states)} states and {len(graph.edges)} transitions")


def main():
    print("=== Seeding database ===")
    print("-" * 40)

    create_indexes()
    create_sample_workflow()

    print("-" * 40)
    print("Done!")


if __name__ == "__main__":
    main()
