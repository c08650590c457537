"""Integration tests for the FastAPI REST API."""

from __future__ import annotations

import json

import pytest
from httpx import ASGITransport, AsyncClient

from crossdeploy.api.app import create_app
from crossdeploy.api.deps import init_definition_store, reset_definition_store
from crossdeploy.service.definition_store import DefinitionStore
from crossdeploy.settings import Settings
from tests.conftest import SAMPLE_DEFINITION_YAML, SAMPLE_PARAMETERS, SOURCE_ACCOUNT

BAD_DEFINITION_YAML = SAMPLE_DEFINITION_YAML.replace(
    "defaultBranch: master", "defaultBranch: main"
)


@pytest.fixture
def app():
    settings = Settings(default_account_id=SOURCE_ACCOUNT)
    app = create_app(settings=settings)
    # Manually init DefinitionStore (ASGITransport doesn't trigger lifespan)
    init_definition_store(DefinitionStore(account_id=settings.default_account_id))
    yield app
    reset_definition_store()


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def _load(client: AsyncClient) -> str:
    response = await client.post("/definitions", json={"definition_yaml": SAMPLE_DEFINITION_YAML})
    assert response.status_code == 201
    return response.json()["definition_id"]


# ---------------------------------------------------------------------------
# Health, formats & reference
# ---------------------------------------------------------------------------


class TestHealthEndpoint:
    async def test_health(self, client: AsyncClient) -> None:
        response = await client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert "version" in data

    async def test_timing_header(self, client: AsyncClient) -> None:
        response = await client.get("/health")
        assert "x-request-duration-ms" in response.headers


class TestFormatsEndpoint:
    async def test_list_formats(self, client: AsyncClient) -> None:
        response = await client.get("/formats")
        assert response.status_code == 200
        formats = {f["name"]: f for f in response.json()["formats"]}
        assert set(formats) == {"json", "yaml"}
        assert formats["yaml"]["capabilities"]["short_form_intrinsics"] is True
        assert formats["json"]["media_type"] == "application/json"


class TestReferenceEndpoint:
    async def test_reference(self, client: AsyncClient) -> None:
        response = await client.get("/reference/definition")
        assert response.status_code == 200
        assert "TargetAccountID" in response.json()["reference"]


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidateEndpoint:
    async def test_valid(self, client: AsyncClient) -> None:
        response = await client.post("/validate", json={"definition_yaml": SAMPLE_DEFINITION_YAML})
        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is True
        assert data["errors"] == []

    async def test_invalid(self, client: AsyncClient) -> None:
        response = await client.post("/validate", json={"definition_yaml": BAD_DEFINITION_YAML})
        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is False
        assert data["errors"][0]["code"] == "INVALID_DEFAULT_BRANCH"
        assert data["errors"][0]["path"] == "source.defaultBranch"

    async def test_missing_body_field(self, client: AsyncClient) -> None:
        response = await client.post("/validate", json={})
        assert response.status_code == 422


# ---------------------------------------------------------------------------
# Definition CRUD
# ---------------------------------------------------------------------------


class TestDefinitionEndpoints:
    async def test_load(self, client: AsyncClient) -> None:
        response = await client.post(
            "/definitions", json={"definition_yaml": SAMPLE_DEFINITION_YAML}
        )
        assert response.status_code == 201
        data = response.json()
        assert len(data["definition_id"]) == 8
        assert data["stages"] == 2
        assert data["resources"] == 13

    async def test_load_invalid(self, client: AsyncClient) -> None:
        response = await client.post("/definitions", json={"definition_yaml": BAD_DEFINITION_YAML})
        assert response.status_code == 422
        detail = response.json()["detail"]
        assert "validation failed" in detail["message"]
        assert detail["errors"][0]["code"] == "INVALID_DEFAULT_BRANCH"

    async def test_list(self, client: AsyncClient) -> None:
        definition_id = await _load(client)
        response = await client.get("/definitions")
        assert response.status_code == 200
        ids = [d["definition_id"] for d in response.json()["definitions"]]
        assert ids == [definition_id]

    async def test_describe(self, client: AsyncClient) -> None:
        definition_id = await _load(client)
        response = await client.get(f"/definitions/{definition_id}")
        assert response.status_code == 200
        data = response.json()
        assert data["repository"] == "my-serverless-api"
        assert [s["name"] for s in data["stages"]] == ["Source", "Deploy"]
        roles = {r["logical_id"]: r for r in data["roles"]}
        assert roles["CodeBuildRole"]["service_principal"] == "codebuild.amazonaws.com"
        assert data["resources"]["CodeDeploy"] == "AWS::CodeBuild::Project"
        principal = data["target_trust_policy"]["Statement"][0]["Principal"]["AWS"][0]
        assert principal.endswith(":role/Serverless-CodeBuild-Role")

    async def test_describe_unknown(self, client: AsyncClient) -> None:
        response = await client.get("/definitions/missing")
        assert response.status_code == 404

    async def test_delete(self, client: AsyncClient) -> None:
        definition_id = await _load(client)
        response = await client.delete(f"/definitions/{definition_id}")
        assert response.status_code == 204
        response = await client.delete(f"/definitions/{definition_id}")
        assert response.status_code == 404


# ---------------------------------------------------------------------------
# Templates, parameters & diagrams
# ---------------------------------------------------------------------------


class TestTemplateEndpoints:
    async def test_get_yaml(self, client: AsyncClient) -> None:
        definition_id = await _load(client)
        response = await client.get(f"/definitions/{definition_id}/template")
        assert response.status_code == 200
        data = response.json()
        assert data["format"] == "yaml"
        assert data["template_valid"] is True
        assert "!Ref CodeCommitRepoName" in data["template"]
        assert "CodePipeline" in data["resources"]

    async def test_get_json(self, client: AsyncClient) -> None:
        definition_id = await _load(client)
        response = await client.get(f"/definitions/{definition_id}/template?format=json")
        assert response.status_code == 200
        doc = json.loads(response.json()["template"])
        assert doc["AWSTemplateFormatVersion"] == "2010-09-09"

    async def test_unknown_format(self, client: AsyncClient) -> None:
        definition_id = await _load(client)
        response = await client.get(f"/definitions/{definition_id}/template?format=xml")
        assert response.status_code == 400
        assert "Unsupported format" in response.json()["detail"]

    async def test_unknown_definition(self, client: AsyncClient) -> None:
        response = await client.get("/definitions/missing/template")
        assert response.status_code == 404

    async def test_post_with_parameters(self, client: AsyncClient) -> None:
        definition_id = await _load(client)
        response = await client.post(
            f"/definitions/{definition_id}/template",
            json={"format": "json", "parameters": SAMPLE_PARAMETERS},
        )
        assert response.status_code == 200
        assert response.json()["parameters"]["CodeCommitRepoBranch"] == "master"

    async def test_post_with_bad_parameters(self, client: AsyncClient) -> None:
        definition_id = await _load(client)
        response = await client.post(
            f"/definitions/{definition_id}/template",
            json={"parameters": {"TargetAccountID": "1234"}},
        )
        assert response.status_code == 422
        codes = {e["code"] for e in response.json()["detail"]["errors"]}
        assert codes == {"PARAMETER_TOO_SHORT", "PARAMETER_PATTERN_MISMATCH"}


class TestParametersEndpoint:
    async def test_bind(self, client: AsyncClient) -> None:
        definition_id = await _load(client)
        response = await client.post(
            f"/definitions/{definition_id}/parameters", json={"parameters": SAMPLE_PARAMETERS}
        )
        assert response.status_code == 200
        assert response.json()["parameters"]["DeploymentEnvironment"] == "DEV"

    async def test_unknown_parameter(self, client: AsyncClient) -> None:
        definition_id = await _load(client)
        response = await client.post(
            f"/definitions/{definition_id}/parameters",
            json={"parameters": {**SAMPLE_PARAMETERS, "Stage": "DEV"}},
        )
        assert response.status_code == 422
        (error,) = response.json()["detail"]["errors"]
        assert error["code"] == "UNKNOWN_PARAMETER"


class TestDiagramEndpoint:
    async def test_diagram(self, client: AsyncClient) -> None:
        definition_id = await _load(client)
        response = await client.get(f"/definitions/{definition_id}/diagram?theme=dark")
        assert response.status_code == 200
        mermaid = response.json()["mermaid"]
        assert mermaid.startswith("%%{init: {'theme': 'dark'}}%%")
        assert "flowchart LR" in mermaid
