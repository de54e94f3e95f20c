# policy.py
# Dynamic policy evaluator.
#
# A policy is a short-lived rule: when any of its trigger paths is truthy in
# the current observation, its actions run through the tool registry and a
# verification record is written. Policies expire after ttlMs and respect a
# cooldown between firings.

import json
import random
import string
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from coach_agent.models import Policy, PolicySafeguards, PolicyTrigger, PolicyTriggers, PolicyVerify, ToolCall, now_ms
from coach_agent.telemetry import JsonlLogger
from coach_agent.tools import ToolRegistry

PROPOSAL_TTL_MS = 48 * 60 * 60 * 1000


def _policy_id() -> str:
    return "pol_" + "".join(random.choices(string.ascii_lowercase + string.digits, k=6))


def lookup(data: Any, path: str) -> Any:
    """Resolve a dotted path ("a.b.0.c") against nested dicts and lists."""
    current = data
    for part in path.split("."):
        if isinstance(current, dict):
            current = current.get(part)
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return None
    return current


class PolicyEvaluator:
    def __init__(self, path: Path, registry: ToolRegistry, logger: JsonlLogger) -> None:
        self.path = Path(path)
        self.registry = registry
        self.logger = logger

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def list_policies(self) -> list[Policy]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            return [Policy.model_validate(p) for p in raw.get("policies", [])]
        except (OSError, json.JSONDecodeError, ValidationError, AttributeError):
            return []

    def _save(self, policies: list[Policy]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"policies": [p.to_json() for p in policies]}
        self.path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def add(self, policy: Policy) -> Policy:
        policies = [p for p in self.list_policies() if p.id != policy.id]
        policies.append(policy)
        self._save(policies)
        return policy

    def propose(self, intent: str = "adaptive facilitation") -> Policy:
        """Offline skeleton proposal; not stored until passed to add()."""
        policy_id = _policy_id()
        return Policy(
            id=policy_id,
            intent=intent,
            triggers=PolicyTriggers(any_true=[PolicyTrigger(path="conflict_suspected")]),
            actions=[ToolCall(name="notes.write", args={"text": f"Policy {policy_id}: {intent}"})],
            safeguards=PolicySafeguards(cooldown_ms=300_000, privacy="cloud"),
            verify=PolicyVerify(claim=f"Policy {policy_id} executed"),
            ttl_ms=PROPOSAL_TTL_MS,
            priority=1,
        )

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def _eligible(self, policy: Policy, observation: dict, privacy: str, now: int) -> bool:
        if now > policy.created_at + policy.ttl_ms:
            return False
        if policy.safeguards.privacy != privacy:
            return False
        if policy.last_fired_at is not None and now - policy.last_fired_at < policy.safeguards.cooldown_ms:
            return False
        return any(lookup(observation, trigger.path) for trigger in policy.triggers.any_true)

    def evaluate(self, observation: dict, privacy: str = "cloud") -> list[str]:
        """Fire every eligible policy once; return the ids that fired."""
        policies = self.list_policies()
        now = now_ms()
        fired: list[str] = []

        for policy in sorted(policies, key=lambda p: -p.priority):
            if not self._eligible(policy, observation, privacy, now):
                continue
            results = [self.registry.execute(action, privacy=privacy) for action in policy.actions]
            all_ok = all(r.ok for r in results)
            if policy.verify:
                self.registry.execute(ToolCall(
                    name="agent.verify_step",
                    args={"claim": policy.verify.claim, "evidence": policy.id, "pass": all_ok},
                ))
            policy.last_fired_at = now
            fired.append(policy.id)
            self.logger.log({"type": "policy_fired", "id": policy.id, "ok": all_ok})

        if fired:
            self._save(policies)
        return fired
