"""Definition validation: stage sequencing, artifact chaining, parameter domains."""

from __future__ import annotations

import re

from crossdeploy.models.definition import ActionCategory, PipelineSpec
from crossdeploy.models.errors import DefinitionError

# IAM role names: 1-64 chars of [\w+=,.@-]
_ROLE_NAME_RE = re.compile(r"^[A-Za-z0-9_+=,.@-]{1,64}$")
# Git ref names: no spaces, no '..', no control characters, no leading/trailing '/'
_BRANCH_RE = re.compile(r"^(?!/)(?!.*//)(?!.*\.\.)[^\s~^:?*\[\\]+(?<!/)(?<!\.lock)$")
# Resource-name prefix: must stay valid inside role, policy and bucket names
_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9-]{0,31}$")


class DefinitionValidator:
    """Validates the structural rules of a pipeline definition."""

    def validate(self, spec: PipelineSpec) -> list[DefinitionError]:
        errors: list[DefinitionError] = []
        errors.extend(self._check_name(spec))
        errors.extend(self._check_unique_names(spec))
        errors.extend(self._check_stage_layout(spec))
        errors.extend(self._check_run_order(spec))
        errors.extend(self._check_artifact_chain(spec))
        errors.extend(self._check_branches(spec))
        errors.extend(self._check_environments(spec))
        errors.extend(self._check_role_names(spec))
        errors.extend(self._check_artifact_store(spec))
        errors.extend(self._check_trigger(spec))
        return errors

    def _check_name(self, spec: PipelineSpec) -> list[DefinitionError]:
        if _NAME_RE.match(spec.name):
            return []
        return [
            DefinitionError(
                code="INVALID_NAME",
                message=(
                    f"Name '{spec.name}' must start with a letter and contain only "
                    f"letters, digits and '-' (max 32 characters)"
                ),
                path="name",
            )
        ]

    def _check_unique_names(self, spec: PipelineSpec) -> list[DefinitionError]:
        """Stage names are unique in the pipeline; action names unique per stage."""
        errors: list[DefinitionError] = []
        seen_stages: set[str] = set()
        for i, stage in enumerate(spec.pipeline.stages):
            if stage.name in seen_stages:
                errors.append(
                    DefinitionError(
                        code="DUPLICATE_STAGE_NAME",
                        message=f"Stage '{stage.name}' is declared more than once",
                        path=f"pipeline.stages[{i}]",
                    )
                )
            seen_stages.add(stage.name)

            seen_actions: set[str] = set()
            for j, action in enumerate(stage.actions):
                if action.name in seen_actions:
                    errors.append(
                        DefinitionError(
                            code="DUPLICATE_ACTION_NAME",
                            message=(
                                f"Action '{action.name}' is declared more than once "
                                f"in stage '{stage.name}'"
                            ),
                            path=f"pipeline.stages[{i}].actions[{j}]",
                        )
                    )
                seen_actions.add(action.name)
        return errors

    def _check_stage_layout(self, spec: PipelineSpec) -> list[DefinitionError]:
        """First stage fetches the source, later stages consume it."""
        errors: list[DefinitionError] = []
        stages = spec.pipeline.stages
        if len(stages) < 2:
            errors.append(
                DefinitionError(
                    code="TOO_FEW_STAGES",
                    message=(
                        f"A pipeline needs a source stage followed by at least one "
                        f"deploy stage; found {len(stages)} stage(s)"
                    ),
                    path="pipeline.stages",
                )
            )
        for i, stage in enumerate(stages):
            if not stage.actions:
                errors.append(
                    DefinitionError(
                        code="EMPTY_STAGE",
                        message=f"Stage '{stage.name}' has no actions",
                        path=f"pipeline.stages[{i}].actions",
                    )
                )
            for j, action in enumerate(stage.actions):
                path = f"pipeline.stages[{i}].actions[{j}]"
                is_source = action.provider.category == ActionCategory.SOURCE
                if i == 0 and not is_source:
                    errors.append(
                        DefinitionError(
                            code="SOURCE_STAGE_REQUIRED",
                            message=(
                                f"The first stage may only contain source actions; "
                                f"'{action.name}' uses {action.provider.value}"
                            ),
                            path=path,
                        )
                    )
                elif i > 0 and is_source:
                    errors.append(
                        DefinitionError(
                            code="SOURCE_STAGE_REQUIRED",
                            message=(
                                f"Source action '{action.name}' must be in the first stage, "
                                f"not '{stage.name}'"
                            ),
                            path=path,
                        )
                    )
                if is_source and (action.input_artifacts or len(action.output_artifacts) != 1):
                    errors.append(
                        DefinitionError(
                            code="SOURCE_STAGE_REQUIRED",
                            message=(
                                f"Source action '{action.name}' takes no inputs and "
                                f"produces exactly one output artifact"
                            ),
                            path=path,
                        )
                    )
                if action.provider.category == ActionCategory.BUILD and not action.input_artifacts:
                    errors.append(
                        DefinitionError(
                            code="BUILD_INPUT_REQUIRED",
                            message=f"Build action '{action.name}' needs an input artifact",
                            path=f"{path}.inputArtifacts",
                        )
                    )
        return errors

    def _check_run_order(self, spec: PipelineSpec) -> list[DefinitionError]:
        """Run order strictly increases within every stage."""
        errors: list[DefinitionError] = []
        for i, stage in enumerate(spec.pipeline.stages):
            previous: int | None = None
            for j, action in enumerate(stage.actions):
                if action.run_order < 1 or action.run_order > 999:
                    errors.append(
                        DefinitionError(
                            code="INVALID_RUN_ORDER",
                            message=(
                                f"Action '{action.name}' run order {action.run_order} "
                                f"is outside 1..999"
                            ),
                            path=f"pipeline.stages[{i}].actions[{j}].runOrder",
                        )
                    )
                if previous is not None and action.run_order <= previous:
                    errors.append(
                        DefinitionError(
                            code="RUN_ORDER_NOT_INCREASING",
                            message=(
                                f"Action '{action.name}' in stage '{stage.name}' has run "
                                f"order {action.run_order}, which does not follow {previous}"
                            ),
                            path=f"pipeline.stages[{i}].actions[{j}].runOrder",
                        )
                    )
                previous = action.run_order
        return errors

    def _check_artifact_chain(self, spec: PipelineSpec) -> list[DefinitionError]:
        """Every input artifact was produced by an earlier action; outputs are unique."""
        errors: list[DefinitionError] = []
        produced: dict[str, str] = {}  # artifact → producing action
        for i, stage in enumerate(spec.pipeline.stages):
            for j, action in sorted(enumerate(stage.actions), key=lambda p: p[1].run_order):
                path = f"pipeline.stages[{i}].actions[{j}]"
                for artifact in action.input_artifacts:
                    if artifact not in produced:
                        errors.append(
                            DefinitionError(
                                code="UNKNOWN_INPUT_ARTIFACT",
                                message=(
                                    f"Action '{action.name}' consumes artifact '{artifact}' "
                                    f"that no earlier action produces"
                                ),
                                path=f"{path}.inputArtifacts",
                                suggestions=sorted(produced),
                            )
                        )
                for artifact in action.output_artifacts:
                    if artifact in produced:
                        errors.append(
                            DefinitionError(
                                code="DUPLICATE_OUTPUT_ARTIFACT",
                                message=(
                                    f"Artifact '{artifact}' is produced by both "
                                    f"'{produced[artifact]}' and '{action.name}'"
                                ),
                                path=f"{path}.outputArtifacts",
                            )
                        )
                    else:
                        produced[artifact] = action.name
        return errors

    def _check_branches(self, spec: PipelineSpec) -> list[DefinitionError]:
        errors: list[DefinitionError] = []
        source = spec.source
        if not source.branches:
            errors.append(
                DefinitionError(
                    code="NO_BRANCHES",
                    message="At least one branch must be allowed",
                    path="source.branches",
                )
            )
        seen: set[str] = set()
        for i, branch in enumerate(source.branches):
            if branch in seen:
                errors.append(
                    DefinitionError(
                        code="DUPLICATE_BRANCH",
                        message=f"Branch '{branch}' is listed more than once",
                        path=f"source.branches[{i}]",
                    )
                )
            seen.add(branch)
            if not _BRANCH_RE.match(branch):
                errors.append(
                    DefinitionError(
                        code="INVALID_BRANCH_NAME",
                        message=f"'{branch}' is not a valid branch name",
                        path=f"source.branches[{i}]",
                    )
                )
        if source.branches and source.default_branch not in source.branches:
            errors.append(
                DefinitionError(
                    code="INVALID_DEFAULT_BRANCH",
                    message=(
                        f"Default branch '{source.default_branch}' is not one of "
                        f"{', '.join(source.branches)}"
                    ),
                    path="source.defaultBranch",
                    suggestions=list(source.branches),
                )
            )
        return errors

    def _check_environments(self, spec: PipelineSpec) -> list[DefinitionError]:
        errors: list[DefinitionError] = []
        target = spec.target
        if not target.environments:
            errors.append(
                DefinitionError(
                    code="NO_ENVIRONMENTS",
                    message="At least one deployment environment must be allowed",
                    path="target.environments",
                )
            )
        elif target.default_environment not in target.environments:
            errors.append(
                DefinitionError(
                    code="INVALID_DEFAULT_ENVIRONMENT",
                    message=(
                        f"Default environment '{target.default_environment}' is not one of "
                        f"{', '.join(target.environments)}"
                    ),
                    path="target.defaultEnvironment",
                    suggestions=list(target.environments),
                )
            )
        return errors

    def _check_role_names(self, spec: PipelineSpec) -> list[DefinitionError]:
        errors: list[DefinitionError] = []
        for path, value in (
            ("target.assumeRole", spec.target.assume_role),
            ("target.executionRole", spec.target.execution_role),
        ):
            if not _ROLE_NAME_RE.match(value):
                errors.append(
                    DefinitionError(
                        code="INVALID_ROLE_NAME",
                        message=f"'{value}' is not a valid IAM role name",
                        path=path,
                    )
                )
        return errors

    def _check_artifact_store(self, spec: PipelineSpec) -> list[DefinitionError]:
        days = spec.artifact_store.noncurrent_version_expiration_days
        if days >= 1:
            return []
        return [
            DefinitionError(
                code="INVALID_RETENTION",
                message=f"Noncurrent versions must be kept at least 1 day, got {days}",
                path="artifactStore.noncurrentVersionExpirationDays",
            )
        ]

    def _check_trigger(self, spec: PipelineSpec) -> list[DefinitionError]:
        if spec.trigger.events:
            return []
        return [
            DefinitionError(
                code="NO_TRIGGER_EVENTS",
                message="The trigger rule must match at least one repository event",
                path="trigger.events",
            )
        ]
