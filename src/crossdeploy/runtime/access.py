"""IAM-style authorization of runtime calls against the stack's identity policies."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from crossdeploy.compiler.access import action_matches, resource_matches
from crossdeploy.runtime.stack import DeployedStack

logger = logging.getLogger("crossdeploy.runtime")


class AccessDeniedError(Exception):
    """Raised when a role calls an action its policies do not allow."""

    def __init__(self, role: str, action: str, resource: str) -> None:
        self.role = role
        self.action = action
        self.resource = resource
        super().__init__(f"Role '{role}' is not authorized to perform {action} on {resource}")


@dataclass(frozen=True)
class ResolvedStatement:
    effect: str
    actions: tuple[str, ...]
    resources: tuple[str, ...]

    def applies(self, action: str, resource: str) -> bool:
        return any(action_matches(a, action) for a in self.actions) and any(
            resource_matches(r, resource) for r in self.resources
        )


class PolicyEngine:
    """Evaluates identity policies: explicit deny wins, otherwise any allow grants."""

    def __init__(self, stack: DeployedStack) -> None:
        self._stack = stack
        self._statements: dict[str, list[ResolvedStatement]] = {}

    def statements(self, role_id: str) -> list[ResolvedStatement]:
        if role_id not in self._statements:
            resolved: list[ResolvedStatement] = []
            for policy in self._stack.plan.policies_for(role_id):
                for stmt in policy.document.statements:
                    resolved.append(
                        ResolvedStatement(
                            effect=stmt.effect,
                            actions=tuple(stmt.actions),
                            resources=tuple(str(self._stack.resolve(r)) for r in stmt.resources),
                        )
                    )
            self._statements[role_id] = resolved
        return self._statements[role_id]

    def is_allowed(self, role_id: str, action: str, resource: str) -> bool:
        allowed = False
        for stmt in self.statements(role_id):
            if not stmt.applies(action, resource):
                continue
            if stmt.effect == "Deny":
                return False
            allowed = True
        return allowed

    def authorize(self, role_id: str, action: str, resource: str) -> None:
        """Raise ``AccessDeniedError`` unless *role_id* may call *action* on *resource*."""
        if not self.is_allowed(role_id, action, resource):
            logger.warning("Access denied: %s %s on %s", role_id, action, resource)
            raise AccessDeniedError(role_id, action, resource)
