class TenantValidationError(ValueError):
    """Malformed tenant input. Fatal: surfaced immediately and never retried."""


class TenantStatusConflict(Exception):
    def __init__(self, tenant_id: str, *, expected: str, actual: str | None):
        super().__init__(f"tenant {tenant_id} status is {actual!r}, expected {expected!r}")
        self.tenant_id = tenant_id
        self.expected = expected
        self.actual = actual


class ProvisioningError(Exception):
    """A plan step failed; the remaining steps were not attempted."""

    def __init__(self, tenant_id: str, step: str, cause: Exception, completed_steps: list[str]):
        super().__init__(f"provisioning of tenant {tenant_id} failed at step '{step}': {cause}")
        self.tenant_id = tenant_id
        self.step = step
        self.cause = cause
        self.completed_steps = list(completed_steps)


class ProvisioningCancelled(Exception):
    def __init__(self, tenant_id: str, next_step: str, completed_steps: list[str]):
        super().__init__(f"provisioning of tenant {tenant_id} cancelled before step '{next_step}'")
        self.tenant_id = tenant_id
        self.next_step = next_step
        self.completed_steps = list(completed_steps)
