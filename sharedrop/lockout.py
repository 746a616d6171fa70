"""Lockout/cleanup flow.

Detects a user who is already over the limits of their plan (after a
downgrade, or because concurrent uploads slipped past the limit gate) and
keeps them on the cleanup page until they are compliant again. It never
deletes anything; only the user's own deletions, password removals or an
upgrade bring the account back under the limits.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional

from sharedrop.plans import PlanLimits, format_bytes
from sharedrop.quota import Usage, usage_from_files

CLEANUP_PATH = "/dashboard/cleanup"
UPGRADE_PATH = "/pricing"
DASHBOARD_PATH = "/dashboard"
ALLOWED_WHILE_LOCKED = frozenset({CLEANUP_PATH, UPGRADE_PATH})


class ComplianceState(str, Enum):
    COMPLIANT = "COMPLIANT"
    OVER_LIMIT = "OVER_LIMIT"


@dataclass
class Violation:
    resource: str
    used: int
    limit: int


@dataclass
class ComplianceReport:
    state: ComplianceState
    usage: Usage
    violations: List[Violation] = field(default_factory=list)

    @property
    def over_limit(self) -> bool:
        return self.state is ComplianceState.OVER_LIMIT

    @property
    def message(self) -> str:
        if not self.violations:
            return ""
        v = self.violations[0]
        if v.resource == "files":
            return f"Has excedido tu límite de archivos activos ({v.used}/{v.limit})."
        if v.resource == "protected":
            return f"Has excedido tu límite de archivos protegidos con contraseña ({v.used}/{v.limit})."
        return (
            f"Has excedido tu límite de almacenamiento total "
            f"({format_bytes(v.used)}/{format_bytes(v.limit)})."
        )


def evaluate(usage: Usage, limits: PlanLimits) -> ComplianceReport:
    """Over limit means strictly above a ceiling; sitting at it is fine."""
    violations = []
    if usage.active_files > limits.max_files:
        violations.append(Violation("files", usage.active_files, limits.max_files))
    if usage.protected_files > limits.max_pwd:
        violations.append(Violation("protected", usage.protected_files, limits.max_pwd))
    if limits.max_total_storage and usage.storage_bytes > limits.max_total_storage:
        violations.append(Violation("storage", usage.storage_bytes, limits.max_total_storage))

    state = ComplianceState.OVER_LIMIT if violations else ComplianceState.COMPLIANT
    return ComplianceReport(state=state, usage=usage, violations=violations)


def redirect_for(report: ComplianceReport, path: str) -> Optional[str]:
    """Where navigation to ``path`` must be sent instead, if anywhere."""
    if not report.over_limit:
        return None
    path = "/" + path.strip("/") if path else "/"
    if path in ALLOWED_WHILE_LOCKED:
        return None
    return CLEANUP_PATH


class LimitEnforcer:
    """Client-held view of a user's files driving the cleanup flow.

    Works on a snapshot of the file list fetched once; every local deletion
    or update re-evaluates compliance from that snapshot rather than asking
    the server again.
    """

    def __init__(self, files: Iterable, limits: PlanLimits):
        self.limits = limits
        self._files: Dict[str, object] = {}
        for f in files:
            self._files[self._key(f)] = f
        self._confirmation_pending = False
        self._confirmed = False
        self.report = evaluate(usage_from_files(self._files.values()), limits)
        self._was_over = self.report.over_limit

    @staticmethod
    def _key(f) -> str:
        ident = f.get("id") if isinstance(f, dict) else getattr(f, "id", None)
        return str(ident)

    @property
    def state(self) -> ComplianceState:
        return self.report.state

    @property
    def files(self) -> List[object]:
        return list(self._files.values())

    def _recompute(self):
        self.report = evaluate(usage_from_files(self._files.values()), self.limits)
        if self._was_over and not self.report.over_limit and not self._confirmed:
            self._confirmation_pending = True
        self._was_over = self._was_over or self.report.over_limit

    def navigate(self, path: str) -> Optional[str]:
        return redirect_for(self.report, path)

    def remove_file(self, file_id) -> ComplianceState:
        self._files.pop(str(file_id), None)
        self._recompute()
        return self.state

    def update_file(self, updated) -> ComplianceState:
        key = self._key(updated)
        if key in self._files:
            self._files[key] = updated
            self._recompute()
        return self.state

    def take_confirmation(self) -> bool:
        """True exactly once, after the account first gets back under limits."""
        if self._confirmation_pending:
            self._confirmation_pending = False
            self._confirmed = True
            return True
        return False
