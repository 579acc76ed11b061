"""Example running the series pipeline in-process with in-memory plugins."""

import asyncio

from plugflow import (
    InMemoryActionDispatcher,
    WorkflowDefinition,
    WorkflowExecutor,
    get_repository,
)

dispatcher = InMemoryActionDispatcher()


@dispatcher.action("bq-studio", "new-series")
def new_series(config):
    return {"result": {"seriesId": "S1", "name": config["name"]}}


@dispatcher.action("bq-studio", "generate-outline")
async def generate_outline(config):
    await asyncio.sleep(0.1)
    return {"result": {"outlineId": f"outline-for-{config['seriesId']}"}}


@dispatcher.action("bq-studio", "draft-chapter")
async def draft_chapter(config):
    return {"result": {"draftId": f"draft-{config['chapterNumber']}"}}


workflow = WorkflowDefinition.model_validate(
    {
        "name": "New Series Creation Pipeline",
        "status": "active",
        "steps": [
            {
                "id": "step-1",
                "pluginId": "bq-studio",
                "action": "new-series",
                "config": {"name": "{{seriesName}}"},
                "outputMapping": {
                    "seriesId": "$.result.seriesId",
                    "seriesName": "$.result.name",
                },
            },
            {
                "id": "step-2",
                "pluginId": "bq-studio",
                "action": "generate-outline",
                "config": {"seriesId": "{{step-1.seriesId}}"},
                "outputMapping": {"outlineId": "$.result.outlineId"},
            },
            {
                "id": "step-3",
                "pluginId": "bq-studio",
                "action": "draft-chapter",
                "config": {
                    "seriesId": "{{step-1.seriesId}}",
                    "outlineId": "{{step-2.outlineId}}",
                    "chapterNumber": 1,
                },
                "outputMapping": {"draftId": "$.result.draftId"},
            },
        ],
    }
)


async def main():
    repository = get_repository()
    await repository.save_definition(workflow)

    executor = WorkflowExecutor(repository=repository, dispatcher=dispatcher)
    result = await executor.execute(workflow.id, variables={"seriesName": "My Series"})
    print(f"Run {result.run_id} finished: {result.status.value}")
    print(result.context)


if __name__ == "__main__":
    asyncio.run(main())
