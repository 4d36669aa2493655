"""Gateway error taxonomy.

Every failure the gateway can surface maps to one of these classes. Each
class carries the HTTP status and RFC 7807 problem type it renders as.
"""

PROBLEM_BASE = "https://chat-gateway.dev/errors"


class GatewayError(Exception):
    """Base exception for gateway errors."""

    status_code: int = 500
    problem_type: str = f"{PROBLEM_BASE}/internal-error"
    title: str = "Gateway Error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(GatewayError):
    """Request is empty or malformed. Raised before any network call."""

    status_code = 400
    problem_type = f"{PROBLEM_BASE}/invalid-request"
    title = "Invalid Chat Request"


class CredentialMissingError(GatewayError):
    """No API key is configured for the selected provider or tool."""

    status_code = 503
    problem_type = f"{PROBLEM_BASE}/credential-missing"
    title = "Provider Not Configured"

    def __init__(self, provider: str):
        super().__init__(f"No API key is configured for provider '{provider}'")
        self.provider = provider


class ModelUnavailableError(GatewayError):
    """Provider rejected the model as unknown or unsupported."""

    status_code = 404
    problem_type = f"{PROBLEM_BASE}/model-unavailable"
    title = "Model Unavailable"

    def __init__(self, message: str, model: str, attempted: list[str] | None = None):
        super().__init__(message)
        self.model = model
        self.attempted = attempted or [model]


class ProviderError(GatewayError):
    """Any other non-2xx or transport failure from a provider."""

    status_code = 502
    problem_type = f"{PROBLEM_BASE}/provider-error"
    title = "Provider Error"

    def __init__(self, message: str, provider: str, upstream_status: int | None = None):
        super().__init__(message)
        self.provider = provider
        self.upstream_status = upstream_status
        if upstream_status == 504:
            self.status_code = 504


class ToolExecutionError(GatewayError):
    """A tool failed. Converted into a tool result, never fatal to the request."""

    problem_type = f"{PROBLEM_BASE}/tool-error"
    title = "Tool Execution Failed"

    def __init__(self, message: str, tool: str):
        super().__init__(message)
        self.tool = tool


class StreamTransportError(GatewayError):
    """Upstream stream could not be decoded or closed mid-frame."""

    status_code = 502
    problem_type = f"{PROBLEM_BASE}/stream-transport"
    title = "Stream Transport Error"
