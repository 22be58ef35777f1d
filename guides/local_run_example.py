"""Example running a YAML workflow end to end with in-process skills."""

import asyncio
import logging
from pathlib import Path

from skillflow import (
    CachedStepExecutor,
    InputSelectorInterpreter,
    LocalSkillRunner,
    RunEngine,
    RunOrchestrator,
    SkillArtifact,
    SkillResult,
    WorkflowLoader,
    WorkflowRegistry,
)
from skillflow.cache import InMemoryStepCache
from skillflow.persistence import InMemoryRunRepository

skills = LocalSkillRunner()


@skills.skill("fetch_article")
async def fetch_article(input):
    text = f"Contents of {input['url']}"
    return SkillResult(
        ok=True,
        data={"text": text, "title": "Example", "author": "Jane Doe"},
        artifacts=[
            SkillArtifact(artifact_type="html", uri=input["url"], metadata={"id": "art-1"})
        ],
    )


@skills.skill("extract_key_points")
async def extract_key_points(input):
    words = input["text"].split()
    return SkillResult(ok=True, data={"points": words[: input["max_points"]]})


@skills.skill("write_summary")
async def write_summary(input):
    context = input["context"]
    summary = f"{context['title']} by {context['author']}: {', '.join(context['points'])}"
    return SkillResult(ok=True, data={"summary": summary, "tone": input["tone"]})


async def main():
    logging.basicConfig(level=logging.INFO)

    registry = WorkflowRegistry()
    loader = WorkflowLoader(
        registry,
        InputSelectorInterpreter(),
        skills,
        Path(__file__).parent / "workflows",
    )
    result = loader.load_all_workflows()
    print(f"Loaded {result.loaded} workflow(s), {len(result.errors)} error(s)")

    engine = RunEngine(InMemoryRunRepository())
    executor = CachedStepExecutor(engine, skills, cache=InMemoryStepCache())
    orchestrator = RunOrchestrator(engine, registry, executor)

    run = await orchestrator.trigger(
        "demo-tenant",
        "summarize_article",
        {"article": {"url": "https://example.com/a"}, "options": {"tone": "neutral"}},
    )
    run = await orchestrator.process(run.id, run.tenant_id)
    print(f"Run {run.id}: {run.status}")
    for step in await engine.get_run_steps(run.id, run.tenant_id):
        print(f"- {step.step_id}: {step.status} {step.output_data}")


if __name__ == "__main__":
    asyncio.run(main())
