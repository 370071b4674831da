"""Simple example of using the workflow orchestrator."""

import asyncio

from workflow_orchestrator import Agent, WorkflowOrchestrator, demo_inference_service


async def run_example():
    """Run a multi-pass orchestration with one pre-registered agent."""
    architect = Agent(
        name="Ada",
        role="Software Architect",
        instructions="You design maintainable systems and explain trade-offs.",
        tags=["architecture", "design"],
    )
    orchestrator = WorkflowOrchestrator.in_memory(
        demo_inference_service(), agents=[architect]
    )

    prompt = (
        "Implement an integration workflow that imports invoices from the billing system. "
        "Retry failed imports without duplicating records."
    )
    print(f"Running orchestrator with prompt: '{prompt}'")
    print("=" * 60)

    result = await orchestrator.orchestrate(prompt)

    for artifact in result.artifacts:
        print(f"\n--- {artifact.title} ({artifact.type.value}) ---")
        print(artifact.content)

    print("\n" + "=" * 60)
    print(f"Success: {result.success}")
    print(f"Subtasks: {len(result.sub_task_ids)}")
    print(f"Errors: {result.errors or 'none'}")


def main():
    asyncio.run(run_example())


if __name__ == "__main__":
    main()
