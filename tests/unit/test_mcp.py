"""Unit tests for MCP server tools: direct function calls, no transport.

FastMCP's ``@mcp.tool`` wraps functions in ``FunctionTool`` objects.  We call
the underlying function via ``.fn`` to test the business logic directly.
"""

from __future__ import annotations

import json
import re

import pytest
from fastmcp.exceptions import ToolError

# Import the module-level state so we can swap it between tests
import crossdeploy.mcp.server as mcp_mod
from crossdeploy.definition_reference import DEFINITION_REFERENCE
from crossdeploy.mcp.server import (
    check_parameters,
    debug_validation,
    definition_reference,
    describe_definition,
    generate_diagram,
    get_definition_reference,
    list_definitions,
    list_formats,
    load_definition,
    remove_definition,
    render_template,
    simulate_push,
    validate_definition,
)
from crossdeploy.service.definition_store import DefinitionStore
from crossdeploy.settings import Settings
from tests.conftest import SAMPLE_DEFINITION_YAML, SAMPLE_PARAMETERS, SOURCE_ACCOUNT

# Unwrap FunctionTool → raw functions
_load_definition = load_definition.fn
_validate_definition = validate_definition.fn
_describe_definition = describe_definition.fn
_list_definitions = list_definitions.fn
_remove_definition = remove_definition.fn
_render_template = render_template.fn
_check_parameters = check_parameters.fn
_generate_diagram = generate_diagram.fn
_simulate_push = simulate_push.fn
_list_formats = list_formats.fn

PARAMETERS_JSON = json.dumps(SAMPLE_PARAMETERS)


@pytest.fixture(autouse=True)
def _fresh_store() -> None:
    """Give each test an empty store and fixed simulator settings."""
    mcp_mod._store = DefinitionStore(account_id=SOURCE_ACCOUNT)
    mcp_mod._settings = Settings(default_account_id=SOURCE_ACCOUNT, default_region="us-east-1")


def _load() -> str:
    result = _load_definition(SAMPLE_DEFINITION_YAML)
    match = re.search(r"definition_id: (\w+)", result)
    assert match is not None
    return match.group(1)


# ---------------------------------------------------------------------------
# Definition tools
# ---------------------------------------------------------------------------


class TestLoadDefinition:
    def test_load(self) -> None:
        result = _load_definition(SAMPLE_DEFINITION_YAML)
        assert "Definition loaded successfully." in result
        assert "stages:    2" in result
        assert "resources: 13" in result

    def test_load_invalid(self) -> None:
        bad = SAMPLE_DEFINITION_YAML.replace("defaultBranch: master", "defaultBranch: main")
        with pytest.raises(ToolError, match="get_definition_reference"):
            _load_definition(bad)

    def test_store_not_initialised(self) -> None:
        mcp_mod._store = None
        with pytest.raises(ToolError, match="not initialised"):
            _list_definitions()


class TestValidateDefinition:
    def test_valid(self) -> None:
        assert _validate_definition(SAMPLE_DEFINITION_YAML).startswith("Definition is valid.")

    def test_invalid_lists_codes_and_suggestions(self) -> None:
        bad = SAMPLE_DEFINITION_YAML.replace("defaultBranch: master", "defaultBranch: main")
        result = _validate_definition(bad)
        assert result.startswith("Definition has validation errors:")
        assert "[INVALID_DEFAULT_BRANCH]" in result
        assert "(at source.defaultBranch)" in result
        assert "Did you mean: develop, release, master, feature/login?" in result

    def test_warnings_reported(self) -> None:
        result = _validate_definition(SAMPLE_DEFINITION_YAML + "extra: 1\n")
        assert "Warnings:" in result
        assert "[UNKNOWN_KEY]" in result


class TestDescribeListRemove:
    def test_describe(self) -> None:
        definition_id = _load()
        result = _describe_definition(definition_id)
        assert "REPOSITORY: my-serverless-api" in result
        assert "TargetAccountID (required)" in result
        assert "CodeCommitRepoBranch = master" in result
        assert "CloudWatchPipelineTriggerRole  (events.amazonaws.com, trigger)" in result
        assert f"arn:aws:iam::{SOURCE_ACCOUNT}:role/Serverless-CodeBuild-Role" in result

    def test_describe_unknown(self) -> None:
        with pytest.raises(ToolError):
            _describe_definition("missing")

    def test_list(self) -> None:
        assert _list_definitions().startswith("No definitions loaded.")
        definition_id = _load()
        assert definition_id in _list_definitions()

    def test_remove(self) -> None:
        definition_id = _load()
        assert _remove_definition(definition_id) == f"Definition {definition_id} removed."
        with pytest.raises(ToolError):
            _remove_definition(definition_id)


# ---------------------------------------------------------------------------
# Rendering tools
# ---------------------------------------------------------------------------


class TestRenderTemplate:
    def test_yaml(self) -> None:
        result = _render_template(_load())
        assert "AWSTemplateFormatVersion" in result
        assert "!GetAtt CodePipelineRole.Arn" in result

    def test_json_with_parameters(self) -> None:
        result = _render_template(_load(), format="json", parameters_json=PARAMETERS_JSON)
        assert json.loads(result)["Resources"]["CodeDeploy"]["Type"] == "AWS::CodeBuild::Project"

    def test_unknown_format(self) -> None:
        with pytest.raises(ToolError, match="Unsupported format"):
            _render_template(_load(), format="xml")

    def test_bad_parameters_json(self) -> None:
        with pytest.raises(ToolError, match="Invalid parameters JSON"):
            _render_template(_load(), parameters_json="{not json")

    def test_parameters_must_be_object(self) -> None:
        with pytest.raises(ToolError, match="JSON object"):
            _render_template(_load(), parameters_json="[1, 2]")


class TestCheckParameters:
    def test_valid(self) -> None:
        result = _check_parameters(_load(), PARAMETERS_JSON)
        assert result.startswith("Parameters are valid.  Effective values:")
        assert "DeploymentEnvironment = DEV" in result

    def test_missing_target_account(self) -> None:
        with pytest.raises(ToolError, match="TargetAccountID"):
            _check_parameters(_load())


class TestDiagram:
    def test_diagram(self) -> None:
        result = _generate_diagram(_load(), theme="forest")
        assert "flowchart LR" in result
        assert "'theme': 'forest'" in result


class TestSimulatePush:
    def test_default_branch_succeeds(self) -> None:
        result = _simulate_push(_load(), "master", PARAMETERS_JSON)
        assert re.search(r"Execution [0-9a-f-]+: Succeeded", result)
        assert "Pending → Source → Deploy → Succeeded" in result

    def test_other_branch_does_not_start(self) -> None:
        result = _simulate_push(_load(), "develop", PARAMETERS_JSON)
        assert "did not start" in result

    def test_parameters_required(self) -> None:
        with pytest.raises(ToolError, match="Parameter validation failed"):
            _simulate_push(_load(), "master")


class TestFormatsAndReference:
    def test_list_formats(self) -> None:
        result = _list_formats()
        assert "json (application/json): (none)" in result
        assert "yaml (application/x-yaml): short_form_intrinsics, supports_comments" in result

    def test_reference_tool(self) -> None:
        assert get_definition_reference.fn() == DEFINITION_REFERENCE

    def test_reference_resource(self) -> None:
        assert definition_reference.fn() == DEFINITION_REFERENCE

    def test_debug_prompt_names_parameters(self) -> None:
        text = debug_validation.fn()
        assert "TRIGGER_RULE_COUNT" in text
        assert "CodeCommitRepoBranch" in text
