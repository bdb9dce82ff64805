"""Script to analyze and validate a workflow definition file"""
import json
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from clientflow.config.settings import get_settings
from clientflow.domain.errors import ParseError
from clientflow.engine.loader import DefinitionLoader
from clientflow.engine.task_library import TaskLibrary
from clientflow.engine.compiler import WorkflowCompiler
from clientflow.repositories.workflow_repo import WorkflowDefinitionRepository
from clientflow.services.workflow_service import WorkflowService


def validate_workflow(path: str) -> bool:
    try:
        definition = DefinitionLoader().load_file(path)
    except ParseError as e:
        print(f"❌ {e.message}")
        return False

    print(f"✅ Found workflow: {definition.name}")
    print(f"   ID: {definition.id}")
    print(f"   Version: {definition.version}")
    if definition.applies_to:
        jurisdictions = ", ".join(definition.applies_to.jurisdictions) or "any"
        print(f"   Applies to: {definition.applies_to.client_type} ({jurisdictions})")
    print()

    print("=" * 60)
    print("WORKFLOW ANALYSIS")
    print("=" * 60)

    stage_counts = {}
    for step in definition.steps:
        stage = step.stage or "(no stage)"
        stage_counts[stage] = stage_counts.get(stage, 0) + 1

    print(f"\n📊 STEP SUMMARY ({len(definition.steps)} total):")
    for stage, count in stage_counts.items():
        print(f"   • {stage}: {count}")
    print(f"🚀 START STEP: {definition.steps[0].id}")

    print("\n" + "=" * 60)
    print("DETAILED STEP ANALYSIS")
    print("=" * 60)

    for i, step in enumerate(definition.steps):
        print(f"\n{i+1}. {step.id}")
        if step.stage:
            print(f"   Stage: {step.stage}")
        if step.task_ref:
            print(f"   Task: {step.task_ref}")
        if step.required_fields:
            print(f"   📋 Required: {', '.join(step.required_fields)}")
        for condition in step.next.conditions:
            print(f"   • If {condition.field} {condition.op.value} {condition.value!r} → {condition.target}")
        print(f"   • Default → {step.next.default}")

    print("\n" + "=" * 60)
    print("VALIDATION RESULTS")
    print("=" * 60)

    settings = get_settings()
    service = WorkflowService(
        repo=WorkflowDefinitionRepository(os.path.dirname(os.path.abspath(path))),
        compiler=WorkflowCompiler(TaskLibrary(settings.tasks_dir)),
    )
    result = service.validate_definition(definition)

    if result["errors"]:
        print("\n❌ ERRORS:")
        for e in result["errors"]:
            print(f"   • {e['message']}")

    if result["warnings"]:
        print("\n⚠️ WARNINGS:")
        for w in result["warnings"]:
            print(f"   • {w['message']}")

    if not result["errors"] and not result["warnings"]:
        print("\n🎉 WORKFLOW IS VALID!")
    elif not result["errors"]:
        print("\n✅ WORKFLOW IS VALID (with warnings)")
    else:
        print("\n❌ WORKFLOW HAS ERRORS")

    if "--raw" in sys.argv:
        print("\n" + "=" * 60)
        print("RAW DEFINITION (for debugging)")
        print("=" * 60)
        print(json.dumps(definition.model_dump(mode="json", by_alias=True), indent=2, default=str))

    return result["is_valid"]


def main():
    paths = [arg for arg in sys.argv[1:] if not arg.startswith("--")]
    if not paths:
        print("Usage: python -m scripts.validate_workflow <definition.yaml> [--raw]")
        sys.exit(2)

    valid = all([validate_workflow(path) for path in paths])
    sys.exit(0 if valid else 1)


if __name__ == "__main__":
    main()
