"""Template generation: stack plan → ordered CloudFormation template mapping.

The mapping still holds intrinsic nodes; output formats decide how to spell
them.  Key order is fixed, so the same plan always yields the same template.
"""

from __future__ import annotations

from typing import Any

from crossdeploy.intrinsics.nodes import Ref
from crossdeploy.models.stack import (
    ArtifactStore,
    BuildProject,
    EncryptionKey,
    IdentityPolicy,
    Parameter,
    PipelineDefinition,
    Role,
    SourceRepository,
    StackOutput,
    StackPlan,
    TriggerRule,
)

TEMPLATE_FORMAT_VERSION = "2010-09-09"


def _tags(tags: dict[str, str]) -> list[dict[str, str]]:
    return [{"Key": k, "Value": v} for k, v in tags.items()]


class TemplateGenerator:
    """Generates the template mapping for a plan."""

    def generate(self, plan: StackPlan) -> dict[str, Any]:
        return {
            "AWSTemplateFormatVersion": TEMPLATE_FORMAT_VERSION,
            "Description": plan.description,
            "Parameters": {name: self._parameter(p) for name, p in plan.parameters.items()},
            "Resources": self._resources(plan),
            "Outputs": {o.name: self._output(o) for o in plan.outputs},
        }

    # -- parameters / outputs ------------------------------------------------

    @staticmethod
    def _parameter(param: Parameter) -> dict[str, Any]:
        out: dict[str, Any] = {"Type": param.type, "Description": param.description}
        if param.default is not None:
            out["Default"] = param.default
        if param.allowed_values:
            out["AllowedValues"] = list(param.allowed_values)
        if param.allowed_pattern is not None:
            out["AllowedPattern"] = param.allowed_pattern
        if param.min_length is not None:
            out["MinLength"] = param.min_length
        if param.max_length is not None:
            out["MaxLength"] = param.max_length
        if param.constraint_description:
            out["ConstraintDescription"] = param.constraint_description
        return out

    @staticmethod
    def _output(output: StackOutput) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if output.description:
            out["Description"] = output.description
        out["Value"] = output.value
        if output.export_name:
            out["Export"] = {"Name": output.export_name}
        return out

    # -- resources -----------------------------------------------------------

    def _resources(self, plan: StackPlan) -> dict[str, Any]:
        store = plan.artifact_store
        resources: dict[str, Any] = {
            plan.repository.logical_id: self._repository(plan.repository),
            plan.build_project.logical_id: self._build_project(plan.build_project, store),
            plan.pipeline.logical_id: self._pipeline(plan.pipeline, store),
        }
        for rule in plan.trigger_rules:
            resources[rule.logical_id] = self._rule(rule)
        resources[store.key.logical_id] = self._key(store.key)
        resources[store.key.alias_logical_id] = {
            "Type": "AWS::KMS::Alias",
            "Properties": {"AliasName": store.key.alias_name, "TargetKeyId": store.key.arn},
        }
        resources[store.logical_id] = self._bucket(store)
        resources[store.policy_logical_id] = {
            "Type": "AWS::S3::BucketPolicy",
            "Properties": {
                "Bucket": Ref(store.logical_id),
                "PolicyDocument": store.bucket_policy.to_dict(),
            },
        }
        for role in plan.roles.values():
            resources[role.logical_id] = self._role(role)
        for policy in plan.managed_policies:
            if policy.logical_id:
                resources[policy.logical_id] = self._managed_policy(policy)
        return resources

    @staticmethod
    def _repository(repo: SourceRepository) -> dict[str, Any]:
        return {
            "Type": repo.resource_type,
            "Properties": {
                "RepositoryDescription": repo.description,
                "RepositoryName": repo.name,
            },
        }

    @staticmethod
    def _build_project(project: BuildProject, store: ArtifactStore) -> dict[str, Any]:
        props: dict[str, Any] = {
            "Name": project.name,
            "Artifacts": {"Type": "CODEPIPELINE"},
            "Source": {"Type": "CODEPIPELINE"},
            "ServiceRole": project.service_role,
            "EncryptionKey": store.encryption_key,
            "Environment": {
                "Type": project.environment_type,
                "Image": project.image,
                "ComputeType": project.compute_type,
                "EnvironmentVariables": [
                    {"Name": v.name, "Type": v.type, "Value": v.value}
                    for v in project.environment_variables
                ],
            },
        }
        if project.tags:
            props["Tags"] = _tags(project.tags)
        return {"Type": project.resource_type, "Properties": props}

    @staticmethod
    def _pipeline(pipeline: PipelineDefinition, store: ArtifactStore) -> dict[str, Any]:
        stages = []
        for stage in pipeline.stages:
            actions = []
            for action in stage.actions:
                entry: dict[str, Any] = {
                    "Name": action.name,
                    "ActionTypeId": {
                        "Category": action.action_type.category,
                        "Owner": action.action_type.owner,
                        "Provider": action.action_type.provider,
                        "Version": action.action_type.version,
                    },
                    "RunOrder": action.run_order,
                }
                if action.input_artifacts:
                    entry["InputArtifacts"] = [{"Name": a} for a in action.input_artifacts]
                if action.output_artifacts:
                    entry["OutputArtifacts"] = [{"Name": a} for a in action.output_artifacts]
                entry["Configuration"] = dict(action.configuration)
                actions.append(entry)
            stages.append({"Name": stage.name, "Actions": actions})
        return {
            "Type": pipeline.resource_type,
            "Properties": {
                "Name": pipeline.name,
                "ArtifactStore": {
                    "Location": pipeline.artifact_bucket,
                    "Type": "S3",
                    "EncryptionKey": {"Id": store.encryption_key, "Type": "KMS"},
                },
                "RestartExecutionOnUpdate": pipeline.restart_execution_on_update,
                "RoleArn": pipeline.role_arn,
                "Stages": stages,
            },
        }

    @staticmethod
    def _rule(rule: TriggerRule) -> dict[str, Any]:
        return {
            "Type": rule.resource_type,
            "Properties": {
                "Description": rule.description,
                "EventPattern": rule.pattern.to_dict(),
                "Name": rule.name,
                "State": rule.state,
                "Targets": [
                    {"Arn": t.arn, "Id": t.id, "RoleArn": t.role_arn} for t in rule.targets
                ],
            },
        }

    @staticmethod
    def _key(key: EncryptionKey) -> dict[str, Any]:
        props: dict[str, Any] = {
            "Description": key.description,
            "Enabled": True,
            "EnableKeyRotation": key.enable_rotation,
            "KeyPolicy": key.key_policy.to_dict(),
        }
        if key.tags:
            props["Tags"] = _tags(key.tags)
        return {"Type": key.resource_type, "Properties": props}

    @staticmethod
    def _bucket(store: ArtifactStore) -> dict[str, Any]:
        props: dict[str, Any] = {
            "BucketName": store.bucket_name,
            "AccessControl": "Private",
            "LifecycleConfiguration": {
                "Rules": [
                    {
                        "Id": r.id,
                        "NoncurrentVersionExpirationInDays": r.noncurrent_version_expiration_days,
                        "Prefix": r.prefix,
                        "Status": r.status,
                    }
                    for r in store.lifecycle_rules
                ]
            },
            "VersioningConfiguration": {"Status": "Enabled" if store.versioning else "Suspended"},
            "BucketEncryption": {
                "ServerSideEncryptionConfiguration": [
                    {
                        "ServerSideEncryptionByDefault": {
                            "KMSMasterKeyID": store.encryption_key,
                            "SSEAlgorithm": "aws:kms",
                        }
                    }
                ]
            },
        }
        if store.tags:
            props["Tags"] = _tags(store.tags)
        return {"Type": store.resource_type, "Properties": props}

    @staticmethod
    def _role(role: Role) -> dict[str, Any]:
        props: dict[str, Any] = {
            "RoleName": role.role_name,
            "AssumeRolePolicyDocument": role.trust_document().to_dict(),
            "Path": "/",
        }
        if role.inline_policies:
            props["Policies"] = [
                {"PolicyName": p.name, "PolicyDocument": p.document.to_dict()}
                for p in role.inline_policies
            ]
        return {"Type": role.resource_type, "Properties": props}

    @staticmethod
    def _managed_policy(policy: IdentityPolicy) -> dict[str, Any]:
        props: dict[str, Any] = {"ManagedPolicyName": policy.name}
        if policy.description:
            props["Description"] = policy.description
        props["PolicyDocument"] = policy.document.to_dict()
        props["Roles"] = [Ref(role_id) for role_id in policy.roles]
        return {"Type": policy.resource_type, "Properties": props}
