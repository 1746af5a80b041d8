"""Error taxonomy shared by the orchestrator components.

Transport and server errors met during upload or processing requests are
recorded on the Job; the remaining errors are raised to the caller.
"""
from typing import Optional


class OrchestratorError(Exception):
    error_code = "ORCHESTRATOR_ERROR"

    def __init__(self, error_message: str, *, error_code: Optional[str] = None):
        super().__init__(error_message)
        self.error_message = error_message
        if error_code:
            self.error_code = error_code

    def to_detail(self) -> dict:
        return {"error_code": self.error_code, "error_message": self.error_message}


class TransportError(OrchestratorError):
    error_code = "TRANSPORT_ERROR"


class MalformedResponse(TransportError):
    error_code = "MALFORMED_RESPONSE"


class ServerRejected(OrchestratorError):
    error_code = "SERVER_REJECTED"

    def __init__(self, error_message: str, *, status_code: int, error_code: Optional[str] = None):
        super().__init__(error_message, error_code=error_code)
        self.status_code = status_code

    def to_detail(self) -> dict:
        detail = super().to_detail()
        detail["upstream_status"] = self.status_code
        return detail


class InvalidState(OrchestratorError):
    error_code = "INVALID_STATE"


class AlreadyInProgress(OrchestratorError):
    error_code = "ALREADY_IN_PROGRESS"


class NotFound(OrchestratorError):
    error_code = "NOT_FOUND"


class RejectedFile(OrchestratorError):
    error_code = "REJECTED_FILE"
