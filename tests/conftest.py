"""Shared test fixtures for crossdeploy."""

from __future__ import annotations

from pathlib import Path

import pytest

from crossdeploy.compiler.pipeline import CompilationPipeline
from crossdeploy.models.definition import PipelineSpec
from crossdeploy.models.stack import StackPlan
from crossdeploy.parser.loader import TrackedLoader
from crossdeploy.parser.resolver import DefinitionResolver
from crossdeploy.runtime.deployment import LocalDeployment, deploy_locally
from crossdeploy.service.definition_store import DefinitionStore

DEFINITIONS_DIR = Path(__file__).parent.parent / "src" / "crossdeploy" / "definitions"
EXAMPLE_DEFINITION = DEFINITIONS_DIR / "serverless_cross_account.yaml"

SOURCE_ACCOUNT = "111111111111"
TARGET_ACCOUNT = "123456789012"
REGION = "us-east-1"


@pytest.fixture
def loader() -> TrackedLoader:
    return TrackedLoader()


@pytest.fixture
def resolver() -> DefinitionResolver:
    return DefinitionResolver()


@pytest.fixture
def sample_spec(loader: TrackedLoader, resolver: DefinitionResolver) -> PipelineSpec:
    """Load and resolve the sample definition."""
    raw, source_map = loader.load_string(SAMPLE_DEFINITION_YAML)
    spec, result = resolver.resolve(raw, source_map)
    assert result.valid, f"Sample definition has errors: {result.errors}"
    return spec


@pytest.fixture
def sample_plan(sample_spec: PipelineSpec) -> StackPlan:
    return CompilationPipeline().plan(sample_spec)


@pytest.fixture
def definition_store() -> DefinitionStore:
    return DefinitionStore(account_id=SOURCE_ACCOUNT)


@pytest.fixture
def deployment(sample_plan: StackPlan) -> LocalDeployment:
    """The sample plan deployed on the default branch into the source account."""
    return deploy_locally(
        sample_plan, SAMPLE_PARAMETERS, account_id=SOURCE_ACCOUNT, region=REGION
    )


SAMPLE_DEFINITION_YAML = """\
version: 1.0
name: Serverless

source:
  repository: my-serverless-api
  branches: [develop, release, master, feature/login]
  defaultBranch: master

target:
  assumeRole: cross-account-role-serverless-deployment
  executionRole: cf-execution-role-serverless
  environments: [DEV, STAGE, PROD]
  defaultEnvironment: DEV

artifactStore:
  bucketPrefix: serverless-codepipeline-bucket
  keyAlias: serverless-codepipeline-key
  noncurrentVersionExpirationDays: 8

pipeline:
  restartExecutionOnUpdate: true
  stages:
    - name: Source
      actions:
        - name: Source
          provider: CodeCommit
          runOrder: 10
          outputArtifacts: [SourceArtifact]
    - name: Deploy
      actions:
        - name: Deploy-Lambda
          provider: CodeBuild
          runOrder: 20
          inputArtifacts: [SourceArtifact]
          outputArtifacts: [DeployArtifact]

trigger:
  events: [referenceCreated, referenceUpdated]
"""

SAMPLE_PARAMETERS = {"TargetAccountID": TARGET_ACCOUNT}
