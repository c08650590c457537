"""Diagram generation from stack plans."""

from __future__ import annotations

from crossdeploy.models.stack import REPOSITORY_BRANCH, REPOSITORY_NAME, StackPlan


def _sanitize_id(name: str) -> str:
    """Make a name safe for use as a Mermaid node identifier."""
    s = name.replace(" ", "_").replace("-", "_")
    return "".join(c for c in s if c.isalnum() or c == "_")


def _label(text: str) -> str:
    return text.replace('"', "'")


def generate_mermaid_flow(plan: StackPlan, *, theme: str = "default") -> str:
    """Generate a Mermaid flowchart of how a commit becomes a deployment.

    Repository → trigger rule → pipeline stages (one node per action, in run
    order) → build project → target account, with the encrypted artifact
    store hanging off the pipeline.  Returns the raw Mermaid script (without
    markdown fences).
    """
    repo_param = plan.parameters.get(REPOSITORY_NAME)
    branch_param = plan.parameters.get(REPOSITORY_BRANCH)
    repo_name = repo_param.default if repo_param and repo_param.default else "repository"
    branch = branch_param.default if branch_param and branch_param.default else "branch"

    repo_id = _sanitize_id(plan.repository.logical_id)
    pipeline_id = _sanitize_id(plan.pipeline.logical_id)
    project_id = _sanitize_id(plan.build_project.logical_id)
    store = plan.artifact_store
    bucket_id = _sanitize_id(store.logical_id)
    key_id = _sanitize_id(store.key.logical_id)

    lines: list[str] = [
        f"%%{{init: {{'theme': '{theme}'}}}}%%",
        "flowchart LR",
        f'    {repo_id}[("{_label(repo_name)}")]',
    ]

    for rule in plan.enabled_rules():
        rule_id = _sanitize_id(rule.logical_id)
        events = ", ".join(rule.pattern.events)
        lines.append(f'    {rule_id}{{{{"{_label(rule.logical_id)}<br/>{events}"}}}}')
        lines.append(f'    {repo_id} -- "{_label(branch)}" --> {rule_id}')
        lines.append(f'    {rule_id} -- "StartPipelineExecution" --> {pipeline_id}')

    lines.append(f'    subgraph {pipeline_id} ["{_label(plan.pipeline.logical_id)}"]')
    lines.append("        direction LR")
    previous: tuple[str, list[str]] | None = None
    build_nodes: list[str] = []
    for stage in plan.pipeline.stages:
        for action in sorted(stage.actions, key=lambda a: a.run_order):
            node = _sanitize_id(f"{stage.name}_{action.name}")
            provider = action.action_type.provider
            lines.append(
                f'        {node}["{_label(stage.name)}: {_label(action.name)}<br/>{provider}"]'
            )
            if previous is not None:
                prev_node, prev_outputs = previous
                shared = [a for a in action.input_artifacts if a in prev_outputs]
                if shared:
                    lines.append(f'        {prev_node} -- "{", ".join(shared)}" --> {node}')
                else:
                    lines.append(f"        {prev_node} --> {node}")
            previous = (node, list(action.output_artifacts))
            if action.action_type.category == "Build":
                build_nodes.append(node)
    lines.append("    end")

    lines.append(f'    {project_id}[["{_label(plan.build_project.logical_id)}"]]')
    for node in build_nodes:
        lines.append(f"    {node} --> {project_id}")
    lines.append('    target(("Target account"))')
    lines.append(f'    {project_id} -. "sts:AssumeRole" .-> target')

    lines.append(f'    {bucket_id}[("{_label(store.logical_id)}")]')
    lines.append(f'    {key_id}>"{_label(store.key.logical_id)}"]')
    lines.append(f"    {pipeline_id} -.-> {bucket_id}")
    lines.append(f"    {bucket_id} -. encrypted by .-> {key_id}")

    return "\n".join(lines)
