import pytest

from plugflow.contracts import WorkflowDefinition, WorkflowStatus
from plugflow.dispatchers import InMemoryActionDispatcher
from plugflow.persistence import InMemoryWorkflowRepository

SERIES_WORKFLOW = {
    "name": "New Series Creation Pipeline",
    "description": "Create a series, outline it and draft the first chapter",
    "targetType": "global",
    "steps": [
        {
            "id": "step-1",
            "name": "Create Series",
            "pluginId": "bq-studio",
            "action": "new-series",
            "config": {"name": "{{seriesName}}", "genre": "fantasy"},
            "outputMapping": {
                "seriesId": "$.result.seriesId",
                "seriesName": "$.result.name",
            },
        },
        {
            "id": "step-2",
            "name": "Generate Outline",
            "pluginId": "bq-studio",
            "action": "generate-outline",
            "config": {"seriesId": "{{step-1.seriesId}}", "chapters": 12},
            "outputMapping": {"outlineId": "$.result.outlineId"},
        },
        {
            "id": "step-3",
            "name": "Draft First Chapter",
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


def make_series_workflow(**overrides) -> WorkflowDefinition:
    data = dict(SERIES_WORKFLOW, status=WorkflowStatus.ACTIVE.value)
    data.update(overrides)
    return WorkflowDefinition.model_validate(data)


def make_series_dispatcher() -> InMemoryActionDispatcher:
    dispatcher = InMemoryActionDispatcher()
    dispatcher.register(
        "bq-studio",
        "new-series",
        lambda config: {"result": {"seriesId": "S1", "name": config["name"]}},
    )
    dispatcher.register(
        "bq-studio",
        "generate-outline",
        lambda config: {"result": {"outlineId": "O1"}},
    )

    @dispatcher.action("bq-studio", "draft-chapter")
    async def draft_chapter(config):
        return {"result": {"draftId": "D1"}}

    return dispatcher


@pytest.fixture
def series_workflow() -> WorkflowDefinition:
    return make_series_workflow()


@pytest.fixture
def series_dispatcher() -> InMemoryActionDispatcher:
    return make_series_dispatcher()


@pytest.fixture
def repository() -> InMemoryWorkflowRepository:
    return InMemoryWorkflowRepository()
