import json

import pytest
from pydantic import ValidationError

from plugflow.contracts import TargetType, WorkflowStatus
from plugflow.definitions import load_definition_file

YAML_DEFINITION = """
id: wf-series
name: New Series Creation Pipeline
status: active
targetType: global
steps:
  - id: step-1
    pluginId: bq-studio
    action: new-series
    config:
      name: "{{seriesName}}"
    outputMapping:
      seriesId: $.result.seriesId
  - id: step-2
    plugin_id: bq-studio
    action: generate-outline
    config:
      seriesId: "{{step-1.seriesId}}"
    output_mapping:
      outlineId: $.result.outlineId
"""


def test_load_yaml_definition(tmp_path):
    path = tmp_path / "series.yaml"
    path.write_text(YAML_DEFINITION)

    [definition] = load_definition_file(path)
    assert definition.id == "wf-series"
    assert definition.status == WorkflowStatus.ACTIVE
    assert definition.target_type == TargetType.GLOBAL
    assert definition.step_ids() == ["step-1", "step-2"]
    assert definition.steps[1].plugin_id == "bq-studio"
    assert definition.steps[1].output_mapping == {"outlineId": "$.result.outlineId"}
    assert definition.steps[0].config == {"name": "{{seriesName}}"}


def test_load_json_list(tmp_path, series_workflow):
    path = tmp_path / "workflows.json"
    second = series_workflow.model_copy(update={"id": "wf-2", "name": "Second"})
    path.write_text(json.dumps([series_workflow.to_dict(), second.to_dict()]))

    definitions = load_definition_file(str(path))
    assert [d.id for d in definitions] == [series_workflow.id, "wf-2"]
    assert definitions[0].steps == series_workflow.steps


def test_rejects_scalar_document(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text('"just a string"')
    with pytest.raises(ValueError):
        load_definition_file(path)


def test_rejects_invalid_definition(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("name: Broken\nsteps:\n  - id: step-1\n")
    with pytest.raises(ValidationError):
        load_definition_file(path)


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_definition_file(tmp_path / "absent.json")
