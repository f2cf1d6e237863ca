"""
Message Interceptor

Routes each client message either to the backend or, when the policy
denies it, back to the client as a synthesized JSON-RPC error.
"""

from enum import Enum

from pydantic import BaseModel, Field
from structlog import get_logger

from mcpfirewall.policy.engine import PolicyEngine
from mcpfirewall.policy.models import ToolCallRequest, Verdict
from mcpfirewall.proxy.framing import encode_frame
from mcpfirewall.proxy.protocol import JsonRpcProtocol, MalformedMessage

logger = get_logger(__name__)

# Characters of a malformed frame included in diagnostics
PREVIEW_LENGTH = 120


class FailMode(str, Enum):
    """What to do with frames that are not valid JSON objects."""

    OPEN = "open"
    """Forward them to the backend unchanged."""

    CLOSED = "closed"
    """Answer with a parse error; the backend never sees them."""


class Route(str, Enum):
    """Where an intercepted message goes."""

    FORWARD = "forward"
    REPLY = "reply"


class InterceptResult(BaseModel):
    """Routing decision for one client message."""

    route: Route = Field(
        description="Backend input or client output"
    )

    payload: bytes = Field(
        description="Newline-terminated bytes to write"
    )

    verdict: Verdict | None = Field(
        default=None,
        description="Policy verdict, absent for malformed frames"
    )

    malformed: bool = Field(
        default=False,
        description="Whether the frame failed to parse"
    )


class MessageInterceptor:
    """
    Applies the policy engine to client messages.

    The decision path is synchronous and pure apart from counters, so
    it can be driven directly in tests without any channels.

    Usage:
        interceptor = MessageInterceptor(engine)
        result = interceptor.process('{"jsonrpc": "2.0", ...}')
        if result.route == Route.FORWARD:
            await backend.write_line(result.payload)
        else:
            await client.reply(result.payload)
    """

    def __init__(
        self,
        engine: PolicyEngine,
        fail_mode: FailMode = FailMode.OPEN,
    ):
        """
        Initialize the interceptor.

        Args:
            engine: Policy engine that decides each request.
            fail_mode: Handling of frames that fail to parse.
        """
        self.engine = engine
        self.fail_mode = fail_mode

        self._message_count = 0
        self._forwarded_count = 0
        self._blocked_count = 0
        self._malformed_count = 0

        logger.info(
            "message_interceptor_initialized",
            fail_mode=fail_mode.value,
        )

    def process(self, line: str) -> InterceptResult:
        """
        Decide what happens to one decoded frame.

        Args:
            line: A complete frame without its delimiter.

        Returns:
            InterceptResult: Route and payload.
        """
        self._message_count += 1

        try:
            message = JsonRpcProtocol.parse_message(line)
        except MalformedMessage as e:
            return self._handle_malformed(line, e)

        request = ToolCallRequest.from_message(message)
        verdict = self.engine.evaluate_request(request)

        if verdict.allowed:
            self._forwarded_count += 1
            return InterceptResult(
                route=Route.FORWARD,
                payload=JsonRpcProtocol.encode_message(message),
                verdict=verdict,
            )

        self._blocked_count += 1
        logger.warning(
            "request_blocked",
            tool=request.name,
            request_id=request.id,
            paths=verdict.matched_paths,
            category=verdict.category.value if verdict.category else None,
            patterns=verdict.matched_patterns,
        )

        return InterceptResult(
            route=Route.REPLY,
            payload=JsonRpcProtocol.encode_message(
                JsonRpcProtocol.create_access_denied(request.id)
            ),
            verdict=verdict,
        )

    def _handle_malformed(
        self,
        line: str,
        error: MalformedMessage,
    ) -> InterceptResult:
        self._malformed_count += 1
        preview = line[:PREVIEW_LENGTH]

        if self.fail_mode == FailMode.CLOSED:
            logger.warning(
                "malformed_message_rejected",
                error=str(error),
                preview=preview,
            )
            return InterceptResult(
                route=Route.REPLY,
                payload=JsonRpcProtocol.encode_message(
                    JsonRpcProtocol.create_parse_error()
                ),
                malformed=True,
            )

        self._forwarded_count += 1
        logger.warning(
            "malformed_message_forwarded",
            error=str(error),
            preview=preview,
        )
        return InterceptResult(
            route=Route.FORWARD,
            payload=encode_frame(line),
            malformed=True,
        )

    @property
    def stats(self) -> dict[str, int]:
        """Message counters since startup."""
        return {
            "message_count": self._message_count,
            "forwarded_count": self._forwarded_count,
            "blocked_count": self._blocked_count,
            "malformed_count": self._malformed_count,
        }
