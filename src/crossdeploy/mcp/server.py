"""FastMCP server exposing crossdeploy's compiler and simulator as MCP tools.

Run via::

    crossdeploy-mcp                       # reads .env (default: stdio)
    MCP_TRANSPORT=http crossdeploy-mcp    # streamable HTTP on port 9000
    MCP_TRANSPORT=sse  crossdeploy-mcp    # legacy SSE on port 9000

One ``DefinitionStore`` is shared by every client of the process.  Settings
are loaded from environment variables and ``.env`` file.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from crossdeploy import __version__
from crossdeploy.compiler.parameters import ParameterValidationError
from crossdeploy.definition_reference import DEFINITION_REFERENCE
from crossdeploy.models.errors import DefinitionValidationError
from crossdeploy.render import FormatRegistry, UnsupportedFormatError
from crossdeploy.runtime import AccessDeniedError, deploy_locally
from crossdeploy.service.definition_store import DefinitionStore
from crossdeploy.service.diagram import generate_mermaid_flow
from crossdeploy.settings import Settings

# ---------------------------------------------------------------------------
# Server + shared state
# ---------------------------------------------------------------------------

logger = logging.getLogger("crossdeploy.mcp")

mcp = FastMCP("crossdeploy")
_store: DefinitionStore | None = None
_settings: Settings | None = None


def _get_store() -> DefinitionStore:
    if _store is None:
        raise ToolError("Definition store not initialised")
    return _store


def _get_settings() -> Settings:
    return _settings if _settings is not None else Settings()


def _parse_parameters(parameters_json: str | None) -> dict[str, str] | None:
    if parameters_json is None:
        return None
    try:
        raw = json.loads(parameters_json)
    except json.JSONDecodeError as exc:
        raise ToolError(f"Invalid parameters JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise ToolError("parameters_json must be a JSON object of name → value")
    return {str(k): str(v) for k, v in raw.items()}


# ---------------------------------------------------------------------------
# Resources: auto-injected context for LLMs
# ---------------------------------------------------------------------------


@mcp.resource("crossdeploy://reference")
def definition_reference() -> str:
    """Pipeline definition format reference: sections, rules and error codes."""
    return DEFINITION_REFERENCE


@mcp.tool
def get_definition_reference() -> str:
    """Get the pipeline definition format reference.

    IMPORTANT: Call this tool BEFORE composing a definition to learn the
    sections, defaults and validation rules.
    """
    return DEFINITION_REFERENCE


# ---------------------------------------------------------------------------
# Definition tools
# ---------------------------------------------------------------------------


@mcp.tool
def load_definition(definition_yaml: str) -> str:
    """Load a cross-account pipeline definition.

    Parse, validate, build and check the stack plan.  Returns a
    definition_id that you must pass to the other tools.

    Args:
        definition_yaml: Complete pipeline definition YAML.
    """
    logger.info("load_definition called (yaml length=%d)", len(definition_yaml))
    store = _get_store()
    try:
        result = store.load_definition(definition_yaml)
    except DefinitionValidationError as exc:
        logger.warning("load_definition validation failed: %s", exc)
        hint = "\n\nHint: call get_definition_reference() to see the definition format."
        raise ToolError(str(exc) + hint) from exc

    parts = [
        f"Definition loaded successfully.  definition_id: {result.definition_id}",
        f"  name:      {result.name}",
        f"  stages:    {result.stages}",
        f"  branches:  {', '.join(result.branches)}",
        f"  resources: {result.resources}",
    ]
    if result.warnings:
        parts.append(f"  warnings: {'; '.join(result.warnings)}")
    return "\n".join(parts)


@mcp.tool
def validate_definition(definition_yaml: str) -> str:
    """Validate a pipeline definition without storing it.

    Args:
        definition_yaml: Complete pipeline definition YAML.
    """
    summary = _get_store().validate(definition_yaml)
    if summary.valid:
        msg = "Definition is valid."
        if summary.warnings:
            msg += "\nWarnings:"
            for w in summary.warnings:
                msg += f"\n  [{w.code}] {w.message}"
        return msg

    lines = ["Definition has validation errors:"]
    for e in summary.errors:
        line = f"  [{e.code}] {e.message}"
        if e.path:
            line += f"  (at {e.path})"
        if e.suggestions:
            line += f"  Did you mean: {', '.join(e.suggestions)}?"
        lines.append(line)
    if summary.warnings:
        lines.append("Warnings:")
        for w in summary.warnings:
            lines.append(f"  [{w.code}] {w.message}")
    return "\n".join(lines)


@mcp.tool
def describe_definition(definition_id: str) -> str:
    """Describe a loaded definition: stages, parameters, roles and resources.

    Args:
        definition_id: The id returned by ``load_definition``.
    """
    try:
        desc = _get_store().describe(definition_id)
    except KeyError as exc:
        raise ToolError(str(exc)) from exc

    lines: list[str] = [f"Definition {definition_id} ({desc.name}):", ""]
    lines.append(f"REPOSITORY: {desc.repository}")
    lines.append(f"  branches: {', '.join(desc.branches)} (default {desc.default_branch})")
    lines.append(f"  trigger events: {', '.join(desc.trigger_events)}")
    lines.append(f"ENVIRONMENTS: {', '.join(desc.environments)}")
    lines.append("")

    lines.append("STAGES:")
    for stage in desc.stages:
        lines.append(f"  {stage.name}")
        for a in stage.actions:
            io = ""
            if a.input_artifacts:
                io += f" in={','.join(a.input_artifacts)}"
            if a.output_artifacts:
                io += f" out={','.join(a.output_artifacts)}"
            lines.append(f"    {a.run_order:>3}  {a.name}  ({a.provider}){io}")
    lines.append("")

    lines.append("PARAMETERS:")
    for p in desc.parameters:
        default = f" = {p.default}" if p.default is not None else " (required)"
        lines.append(f"  {p.name}{default}")
    lines.append("")

    lines.append("ROLES:")
    for r in desc.roles:
        lines.append(f"  {r.logical_id}  ({r.service_principal}, {r.responsibility})")
        lines.append(f"    actions: {', '.join(r.actions)}")
    lines.append("")

    lines.append("TARGET ACCOUNT TRUST POLICY (create in the target account):")
    lines.append(json.dumps(desc.target_trust_policy, indent=2))
    return "\n".join(lines)


@mcp.tool
def list_definitions() -> str:
    """List all loaded definitions."""
    definitions = _get_store().list_definitions()
    if not definitions:
        return "No definitions loaded.  Use load_definition to load one."
    lines = ["Loaded definitions:", ""]
    for d in definitions:
        lines.append(f"  {d.definition_id}  {d.name}  ({d.repository}, {d.stages} stages)")
    return "\n".join(lines)


@mcp.tool
def remove_definition(definition_id: str) -> str:
    """Unload a definition.

    Args:
        definition_id: The id returned by ``load_definition``.
    """
    try:
        _get_store().remove_definition(definition_id)
    except KeyError as exc:
        raise ToolError(str(exc)) from exc
    return f"Definition {definition_id} removed."


@mcp.tool
def render_template(
    definition_id: str,
    format: str = "yaml",  # noqa: A002
    parameters_json: str | None = None,
) -> str:
    """Render the CloudFormation template for a loaded definition.

    Args:
        definition_id: The id returned by ``load_definition``.
        format: ``yaml`` (short-form intrinsics) or ``json``.
        parameters_json: Optional JSON object of stack parameter values to
            check before rendering, e.g. ``{"TargetAccountID": "123456789012"}``.
    """
    parameters = _parse_parameters(parameters_json)
    try:
        result = _get_store().render(definition_id, format, parameters)
    except KeyError as exc:
        raise ToolError(str(exc)) from exc
    except (UnsupportedFormatError, ParameterValidationError) as exc:
        raise ToolError(str(exc)) from exc

    parts = [result.template]
    if result.warnings:
        parts.append("-- warnings --")
        parts.extend(result.warnings)
    return "\n".join(parts)


@mcp.tool
def check_parameters(definition_id: str, parameters_json: str = "{}") -> str:
    """Apply defaults and constraints to stack parameter values.

    Args:
        definition_id: The id returned by ``load_definition``.
        parameters_json: JSON object of parameter name → value.
    """
    parameters = _parse_parameters(parameters_json) or {}
    try:
        bound = _get_store().bind_parameters(definition_id, parameters)
    except KeyError as exc:
        raise ToolError(str(exc)) from exc
    except ParameterValidationError as exc:
        raise ToolError(str(exc)) from exc
    lines = ["Parameters are valid.  Effective values:"]
    lines.extend(f"  {name} = {value}" for name, value in bound.items())
    return "\n".join(lines)


@mcp.tool
def generate_diagram(definition_id: str, theme: str = "default") -> str:
    """Generate a Mermaid flowchart of how a commit flows to the target account.

    Args:
        definition_id: The id returned by ``load_definition``.
        theme: Mermaid theme name.
    """
    try:
        plan = _get_store().get_plan(definition_id)
    except KeyError as exc:
        raise ToolError(str(exc)) from exc
    return generate_mermaid_flow(plan, theme=theme)


@mcp.tool
def simulate_push(
    definition_id: str,
    branch: str,
    parameters_json: str = "{}",
) -> str:
    """Simulate a push to *branch* against a locally deployed copy of the stack.

    The trigger rule, pipeline, build and artifact store run in memory with
    the stack's access policies enforced.  Reports every execution started.

    Args:
        definition_id: The id returned by ``load_definition``.
        branch: Branch that receives the push.
        parameters_json: JSON object of stack parameter values
            (TargetAccountID is required).
    """
    parameters = _parse_parameters(parameters_json) or {}
    settings = _get_settings()
    try:
        plan = _get_store().get_plan(definition_id)
    except KeyError as exc:
        raise ToolError(str(exc)) from exc
    try:
        deployment = deploy_locally(
            plan,
            parameters,
            account_id=settings.default_account_id,
            region=settings.default_region,
        )
        executions = deployment.push(branch)
    except (ParameterValidationError, AccessDeniedError) as exc:
        raise ToolError(str(exc)) from exc

    if not executions:
        return f"No trigger rule matched a push to '{branch}'; the pipeline did not start."
    lines = []
    for e in executions:
        lines.append(f"Execution {e.execution_id}: {e.status.value}")
        lines.append(f"  states: {' → '.join(e.history)}")
        if e.failure:
            lines.append(f"  failure: {e.failure}")
    return "\n".join(lines)


@mcp.tool
def list_formats() -> str:
    """List available template formats and their capabilities."""
    lines = ["Available formats:", ""]
    for name in FormatRegistry.available():
        fmt = FormatRegistry.get(name)
        caps = asdict(fmt.capabilities)
        enabled = [k for k, v in caps.items() if v]
        cap_str = ", ".join(enabled) if enabled else "(none)"
        lines.append(f"  {name} ({fmt.media_type}): {cap_str}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------


@mcp.prompt
def debug_validation() -> str:
    """Definition and plan error codes with causes and fixes."""
    return """\
# crossdeploy Error Codes

## Parse Errors

- `YAML_PARSE_ERROR`: Invalid YAML syntax.  Fix: check indentation and quoting.
- `YAML_SAFETY_ERROR`: Anchors, aliases or custom tags, or a document that is
  too large.  Fix: write plain YAML.
- `<SECTION>_PARSE_ERROR`: A section does not match its schema.
  Fix: compare field names with get_definition_reference().
- `UNKNOWN_PROVIDER`: Action provider is not CodeCommit or CodeBuild.
- `UNKNOWN_TRIGGER_EVENT`: Use referenceCreated, referenceUpdated or referenceDeleted.

## Layout Errors

- `TOO_FEW_STAGES`, `EMPTY_STAGE`: A source stage and at least one more stage,
  each with at least one action.
- `SOURCE_STAGE_REQUIRED`: Only the first stage holds CodeCommit actions; a
  source action has no inputs and exactly one output.
- `BUILD_INPUT_REQUIRED`: A CodeBuild action needs an input artifact.
- `RUN_ORDER_NOT_INCREASING`, `INVALID_RUN_ORDER`: Run orders are 1..999 and
  strictly increase within a stage.
- `UNKNOWN_INPUT_ARTIFACT`, `DUPLICATE_OUTPUT_ARTIFACT`: Artifacts flow from
  an earlier producer; each name is produced once.
- `INVALID_DEFAULT_BRANCH`, `INVALID_DEFAULT_ENVIRONMENT`: Defaults must be
  one of the allowed values.

## Plan Errors

- `DANGLING_REFERENCE`: A Ref, GetAtt or Sub names something undeclared.
- `CYCLIC_DEPENDENCY`: Resources refer to each other in a loop.
- `UNSCOPED_RESOURCE`: An identity policy grants access to `*`.
- `KEY_MISMATCH`: The bucket key and the key roles may decrypt with differ.
- `TRIGGER_RULE_COUNT`: Exactly one enabled rule must start the pipeline.

## Parameter Errors

- `UNKNOWN_PARAMETER`, `MISSING_PARAMETER`, `PARAMETER_NOT_ALLOWED`,
  `PARAMETER_PATTERN_MISMATCH`, `PARAMETER_TOO_SHORT`, `PARAMETER_TOO_LONG`.
  Fix: TargetAccountID is 12 digits; CodeCommitRepoBranch and
  DeploymentEnvironment take their listed values.
"""


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Run the MCP server using settings from environment / .env file."""
    settings = Settings()

    logging.basicConfig(level=settings.log_level.upper())
    logger.info(
        "crossdeploy MCP Server v%s starting (transport=%s)",
        __version__,
        settings.mcp_transport,
    )

    global _store, _settings  # noqa: PLW0603
    _settings = settings
    _store = DefinitionStore(account_id=settings.default_account_id)

    if settings.mcp_transport == "stdio":
        mcp.run(transport="stdio")
    else:
        mcp.run(
            transport=settings.mcp_transport,
            host=settings.mcp_server_host,
            port=settings.mcp_server_port,
            log_level=settings.log_level.lower(),
        )


if __name__ == "__main__":
    main()
