"""Post-generation template validation: every reference must resolve."""

from __future__ import annotations

from typing import Any

from crossdeploy.intrinsics.evaluator import supported_attributes
from crossdeploy.intrinsics.nodes import PSEUDO_PARAMETERS
from crossdeploy.intrinsics.visitor import ReferenceCollector


def validate_template(template: dict[str, Any]) -> list[str]:
    """Check that each Ref, GetAtt and Sub variable resolves inside the template.

    Returns a list of error messages (empty if valid).
    Validation is non-blocking: callers should treat errors as warnings.
    """
    resources: dict[str, Any] = template.get("Resources", {})
    parameters: dict[str, Any] = template.get("Parameters", {})
    known = set(resources) | set(parameters) | PSEUDO_PARAMETERS

    errors: list[str] = []
    sections = [("Resources", name, body) for name, body in resources.items()]
    sections += [("Outputs", name, body) for name, body in template.get("Outputs", {}).items()]
    for section, name, body in sections:
        collector = ReferenceCollector()
        collector.collect(body)
        for ref in sorted(collector.names - known):
            errors.append(f"{section}.{name}: unresolved reference '{ref}'")
        for resource, attribute in sorted(collector.attributes):
            if resource not in resources:
                continue
            resource_type = resources[resource].get("Type", "")
            if attribute not in supported_attributes(resource_type):
                errors.append(
                    f"{section}.{name}: {resource_type} '{resource}' "
                    f"has no attribute '{attribute}'"
                )
    return errors
