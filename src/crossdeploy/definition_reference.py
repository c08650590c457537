"""Pipeline definition reference text: served via the REST API and the MCP server."""

from __future__ import annotations

DEFINITION_REFERENCE = """\
# crossdeploy Pipeline Definition Reference

A pipeline definition is a YAML document describing one cross-account CI/CD
pipeline. Every section is optional; omitted sections take the defaults shown.

## 1. Header

```yaml
version: 1.0
name: Serverless                  # prefix for resource names and export names
description: ...                  # template Description
tags:                             # applied to the build project, key and bucket
  category: goldmine
  project_name: serverless-cross-account-deployment
```

`name` must start with a letter and contain only letters, digits and `-`.

## 2. source: repository and watched branches

```yaml
source:
  repository: my-serverless-api   # CodeCommit repository name
  description: Repo for Serverless Lambda API
  branches: [develop, release, master]   # allowed values of CodeCommitRepoBranch
  defaultBranch: master           # must be one of branches
```

## 3. target: deployment account

```yaml
target:
  assumeRole: cross-account-role-serverless-deployment   # assumed by the build
  executionRole: cf-execution-role-serverless            # passed to CloudFormation
  environments: [DEV, STAGE, PROD]   # allowed values of DeploymentEnvironment
  defaultEnvironment: DEV
```

Both roles live in the target account. The assume role must trust the
build and pipeline roles of the source account (see `target_trust_policy` in the
describe output).

## 4. build: build container

```yaml
build:
  image: aws/codebuild/amazonlinux2-x86_64-standard:3.0
  computeType: BUILD_GENERAL1_SMALL
  environmentType: LINUX_CONTAINER
```

The build receives CROSS_ACCOUNT_ROLE, CF_EXECUTION_ROLE, TARGET_ACCOUNT_ID
and STAGE as environment variables.

## 5. artifactStore: encrypted, versioned bucket

```yaml
artifactStore:
  bucketPrefix: serverless-codepipeline-bucket   # bucket = <prefix>-<region>-<account>
  keyAlias: serverless-codepipeline-key          # alias/<keyAlias>
  noncurrentVersionExpirationDays: 8             # >= 1
```

## 6. pipeline: stages and actions

```yaml
pipeline:
  restartExecutionOnUpdate: true
  stages:
    - name: Source
      actions:
        - name: Source
          provider: CodeCommit    # CodeCommit | CodeBuild
          runOrder: 10            # 1..999, strictly increasing within a stage
          outputArtifacts: [SourceArtifact]
    - name: Deploy
      actions:
        - name: Deploy-Lambda
          provider: CodeBuild
          runOrder: 20
          inputArtifacts: [SourceArtifact]
          outputArtifacts: [DeployArtifact]
```

Rules:
- At least two stages; the first holds only CodeCommit actions, each with no
  inputs and exactly one output.
- CodeBuild actions need at least one input artifact.
- Every input artifact is produced by an earlier action; each output
  artifact name is produced once.
- Stage names are unique; action names are unique within a stage.

## 7. trigger: repository events that start the pipeline

```yaml
trigger:
  events: [referenceCreated, referenceUpdated]   # also: referenceDeleted
```

One rule is generated; it matches branch references equal to the
CodeCommitRepoBranch parameter.

## 8. exports: output export names

```yaml
exports:
  pipelineName: null              # null → <name>-CodePipeline
  pipelineUrl: null
  repositoryArn: my-serverless-lambda-api-repo-arn
  repositoryUrl: my-serverless-lambda-api-repo-url
```

## Stack parameters

The generated template declares:

- `TargetAccountID`: no default; exactly 12 digits.
- `CodePipelineAssumeRoleName`: defaults to `target.assumeRole`.
- `CFExecutionRoleName`: defaults to `target.executionRole`.
- `CodeCommitRepoName`: defaults to `source.repository`.
- `CodeCommitRepoBranch`: one of `source.branches`.
- `DeploymentEnvironment`: one of `target.environments`.

## Error codes

Definition errors carry a code, a message, a dotted path and, where the
YAML position is known, a line/column span. Common codes:
UNKNOWN_PROVIDER, UNKNOWN_TRIGGER_EVENT, TOO_FEW_STAGES, EMPTY_STAGE,
SOURCE_STAGE_REQUIRED, BUILD_INPUT_REQUIRED, RUN_ORDER_NOT_INCREASING,
UNKNOWN_INPUT_ARTIFACT, DUPLICATE_OUTPUT_ARTIFACT, INVALID_DEFAULT_BRANCH,
DANGLING_REFERENCE, UNSCOPED_RESOURCE, KEY_MISMATCH, TRIGGER_RULE_COUNT.
"""
