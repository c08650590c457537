"""Least-privilege access planning: one policy set per responsibility.

Every identity gets the minimum action set for its single job (build,
orchestrate, trigger), scoped to resources declared in the same stack.
The one broadened grant is ``iam:PassRole`` on ``*``: the orchestrator hands
a runner role it does not know in advance to the build service.
"""

from __future__ import annotations

import fnmatch

from crossdeploy.intrinsics.nodes import (
    AWS_ACCOUNT_ID,
    AWS_REGION,
    GetAtt,
    Sub,
    cross_account_role_arn,
)
from crossdeploy.models.stack import (
    ASSUME_ROLE_NAME,
    BUCKET_ID,
    BUILD_POLICY_ID,
    BUILD_PROJECT_ID,
    BUILD_ROLE_ID,
    KEY_ID,
    PIPELINE_ID,
    PIPELINE_POLICY_ID,
    PIPELINE_ROLE_ID,
    REPOSITORY_ID,
    TARGET_ACCOUNT_ID,
    TRIGGER_ROLE_ID,
    IdentityPolicy,
    PolicyDocument,
    PolicyStatement,
    Responsibility,
    Role,
)

# Actions granted by more than one responsibility.
KMS_USAGE_ACTIONS = [
    "kms:DescribeKey",
    "kms:GetKeyPolicy",
    "kms:List*",
    "kms:Encrypt",
    "kms:Decrypt",
    "kms:ReEncrypt*",
    "kms:Generate*",
]
BUCKET_READ_ACTIONS = ["s3:GetBucket*", "s3:ListBucket*"]

# The only (action, resource) wildcard grants a plan may contain.
ALLOWED_WILDCARDS: frozenset[tuple[str, str]] = frozenset({("iam:PassRole", "*")})

SERVICE_PRINCIPALS: dict[Responsibility, str] = {
    Responsibility.BUILD: "codebuild.amazonaws.com",
    Responsibility.ORCHESTRATE: "codepipeline.amazonaws.com",
    Responsibility.TRIGGER: "events.amazonaws.com",
}


def action_matches(pattern: str, action: str) -> bool:
    """IAM action glob match (`*`, `?`); action names are case-insensitive."""
    return fnmatch.fnmatchcase(action.lower(), pattern.lower())


def resource_matches(pattern: str, resource: str) -> bool:
    """IAM resource glob match; ARNs are case-sensitive."""
    return fnmatch.fnmatchcase(resource, pattern)


def _key_arn() -> GetAtt:
    return GetAtt(KEY_ID, "Arn")


def _bucket_arn() -> GetAtt:
    return GetAtt(BUCKET_ID, "Arn")


def _bucket_objects() -> Sub:
    return Sub(f"${{{BUCKET_ID}.Arn}}/*")


def _target_role() -> Sub:
    return cross_account_role_arn(TARGET_ACCOUNT_ID, ASSUME_ROLE_NAME)


def _project_arn() -> Sub:
    return Sub(
        f"arn:aws:codebuild:${{{AWS_REGION}}}:${{{AWS_ACCOUNT_ID}}}:project/${{{BUILD_PROJECT_ID}}}"
    )


def _pipeline_arn() -> Sub:
    return Sub(f"arn:aws:codepipeline:${{{AWS_REGION}}}:${{{AWS_ACCOUNT_ID}}}:${{{PIPELINE_ID}}}")


class AccessPlanner:
    """Builds roles, identity policies, the key policy and the bucket policy."""

    def __init__(self, prefix: str) -> None:
        self._prefix = prefix

    # -- roles ---------------------------------------------------------------

    def roles(self) -> dict[str, Role]:
        trigger_policy = IdentityPolicy(
            name=f"{self._prefix}-CloudWatch-Pipeline-Trigger-Policy",
            document=self.trigger_document(),
        )
        roles = [
            Role(
                logical_id=BUILD_ROLE_ID,
                role_name=f"{self._prefix}-CodeBuild-Role",
                service_principal=SERVICE_PRINCIPALS[Responsibility.BUILD],
                responsibility=Responsibility.BUILD,
            ),
            Role(
                logical_id=PIPELINE_ROLE_ID,
                role_name=f"{self._prefix}-CodePipeline-Role",
                service_principal=SERVICE_PRINCIPALS[Responsibility.ORCHESTRATE],
                responsibility=Responsibility.ORCHESTRATE,
            ),
            Role(
                logical_id=TRIGGER_ROLE_ID,
                role_name=f"{self._prefix}-CloudWatch-Pipeline-Trigger",
                service_principal=SERVICE_PRINCIPALS[Responsibility.TRIGGER],
                responsibility=Responsibility.TRIGGER,
                inline_policies=[trigger_policy],
            ),
        ]
        return {r.logical_id: r for r in roles}

    def managed_policies(self) -> list[IdentityPolicy]:
        return [
            IdentityPolicy(
                name=f"{self._prefix}-CodeBuild-Policy",
                description="Allows CodeBuild to perform builds and deploys",
                document=self.build_document(),
                logical_id=BUILD_POLICY_ID,
                roles=[BUILD_ROLE_ID],
            ),
            IdentityPolicy(
                name=f"{self._prefix}-CodePipeline-Policy",
                description="Allows CodePipeline to fetch sources and start builds",
                document=self.orchestrate_document(),
                logical_id=PIPELINE_POLICY_ID,
                roles=[PIPELINE_ROLE_ID],
            ),
        ]

    # -- identity policy documents -------------------------------------------

    def build_document(self) -> PolicyDocument:
        log_group = (
            f"arn:aws:logs:${{{AWS_REGION}}}:${{{AWS_ACCOUNT_ID}}}"
            f":log-group:/aws/codebuild/${{{BUILD_PROJECT_ID}}}"
        )
        return PolicyDocument(
            statements=[
                PolicyStatement(
                    sid="KMSPolicy", actions=list(KMS_USAGE_ACTIONS), resources=[_key_arn()]
                ),
                PolicyStatement(
                    sid="CloudWatchLogsPolicy",
                    actions=["logs:CreateLogGroup", "logs:CreateLogStream", "logs:PutLogEvents"],
                    resources=[Sub(log_group), Sub(f"{log_group}:*")],
                ),
                PolicyStatement(
                    sid="S3BucketPolicy",
                    actions=list(BUCKET_READ_ACTIONS),
                    resources=[_bucket_arn()],
                ),
                PolicyStatement(
                    sid="S3ObjectPolicy",
                    actions=["s3:PutObject", "s3:GetObject", "s3:GetObjectVersion"],
                    resources=[_bucket_objects()],
                ),
                PolicyStatement(
                    sid="CrossAccountAssumeRolePolicy",
                    actions=["sts:AssumeRole"],
                    resources=[_target_role()],
                ),
                PolicyStatement(
                    sid="CodeCommitAccessPolicy",
                    actions=["codecommit:*"],
                    resources=[GetAtt(REPOSITORY_ID, "Arn")],
                ),
            ]
        )

    def orchestrate_document(self) -> PolicyDocument:
        return PolicyDocument(
            statements=[
                PolicyStatement(
                    sid="KMSPolicy", actions=list(KMS_USAGE_ACTIONS), resources=[_key_arn()]
                ),
                PolicyStatement(
                    sid="CodeCommitPermissions",
                    actions=[
                        "codecommit:GetBranch",
                        "codecommit:GetCommit",
                        "codecommit:UploadArchive",
                        "codecommit:GetUploadArchiveStatus",
                        "codecommit:CancelUploadArchive",
                    ],
                    resources=[GetAtt(REPOSITORY_ID, "Arn")],
                ),
                PolicyStatement(
                    sid="S3BucketPolicy",
                    actions=list(BUCKET_READ_ACTIONS),
                    resources=[_bucket_arn()],
                ),
                PolicyStatement(
                    sid="S3ObjectPolicy",
                    actions=[
                        "s3:AbortMultipartUpload",
                        "s3:GetObject*",
                        "s3:PutObject*",
                        "s3:DeleteObject*",
                        "s3:RestoreObject",
                        "s3:ListMultipartUploadParts",
                    ],
                    resources=[_bucket_objects()],
                ),
                PolicyStatement(sid="PassRolePolicy", actions=["iam:PassRole"], resources=["*"]),
                PolicyStatement(
                    sid="CodeBuildPolicy",
                    actions=["codebuild:StartBuild", "codebuild:BatchGetBuilds"],
                    resources=[_project_arn()],
                ),
                PolicyStatement(
                    sid="CrossAccountAssumeRolePolicy",
                    actions=["sts:AssumeRole"],
                    resources=[_target_role()],
                ),
            ]
        )

    def trigger_document(self) -> PolicyDocument:
        return PolicyDocument(
            statements=[
                PolicyStatement(
                    sid="StartPipelinePolicy",
                    actions=["codepipeline:StartPipelineExecution"],
                    resources=[_pipeline_arn()],
                )
            ]
        )

    # -- resource policies ---------------------------------------------------

    def key_policy(self) -> PolicyDocument:
        return PolicyDocument(
            id=f"{self._prefix.lower()}-codepipeline-key",
            statements=[
                PolicyStatement(
                    sid="KmsAllowKeyAdministration",
                    principals={"AWS": [Sub(f"arn:aws:iam::${{{AWS_ACCOUNT_ID}}}:root")]},
                    actions=["kms:*"],
                    resources=["*"],
                ),
                PolicyStatement(
                    sid="KmsAllowKeyUsage",
                    principals={"AWS": [GetAtt(PIPELINE_ROLE_ID, "Arn")]},
                    actions=[
                        "kms:Decrypt",
                        "kms:DescribeKey",
                        "kms:Encrypt",
                        "kms:GenerateDataKey",
                        "kms:GenerateDataKeyWithoutPlaintext",
                        "kms:ReEncryptFrom",
                        "kms:ReEncryptTo",
                    ],
                    resources=["*"],
                ),
            ],
        )

    def bucket_policy(self) -> PolicyDocument:
        return PolicyDocument(
            statements=[
                PolicyStatement(
                    principals={"AWS": [GetAtt(PIPELINE_ROLE_ID, "Arn")]},
                    actions=[
                        "s3:List*",
                        "s3:Get*",
                        "s3:Put*",
                        "s3:Delete*",
                        "s3:AbortMultipartUpload",
                        "s3:RestoreObject",
                        "s3:ListMultipartUploadParts",
                    ],
                    resources=[
                        Sub(f"arn:aws:s3:::${{{BUCKET_ID}}}"),
                        Sub(f"arn:aws:s3:::${{{BUCKET_ID}}}/*"),
                    ],
                )
            ]
        )


def target_trust_policy(source_account_id: str, *role_names: str) -> PolicyDocument:
    """Trust policy the target account's deployment role must carry.

    *role_names* are the source-account roles granted ``sts:AssumeRole`` on it
    (the build role and the pipeline role).

    The template never creates this; it is printed for operators so the
    far-side half of the cross-account relationship can be checked.
    """
    return PolicyDocument(
        statements=[
            PolicyStatement(
                principals={
                    "AWS": [f"arn:aws:iam::{source_account_id}:role/{name}" for name in role_names]
                },
                actions=["sts:AssumeRole"],
                resources=[],
            )
        ]
    )
