"""Upstream collaborator failure wrapper."""

from __future__ import annotations

from signflow.domain.exceptions import SigningWorkflowError


class UpstreamServiceError(SigningWorkflowError):
    """Raised when storage, the signing oracle or the event bus fails.

    The original exception is chained with ``raise ... from cause`` and also
    kept on ``cause``. The coordinator does not retry; callers may.

    Attributes:
        operation: Coordinator operation that was running (e.g. "sign_document").
        step: Step inside the operation (e.g. "signing_oracle").
        envelope_id: Envelope being processed, if known.
        cause: The wrapped exception.
    """

    code = "UPSTREAM_SERVICE_ERROR"

    def __init__(
        self,
        operation: str,
        step: str,
        envelope_id: str | None,
        cause: BaseException,
    ) -> None:
        self.operation = operation
        self.step = step
        self.envelope_id = envelope_id
        self.cause = cause
        super().__init__(
            f"{operation} failed at step '{step}' for envelope {envelope_id}: "
            f"{type(cause).__name__}: {cause}"
        )
