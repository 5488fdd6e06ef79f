"""
Langfuse tracing client wrapper with graceful degradation.

Uses the Langfuse SDK v3 API. The singleton client stays disabled, and
every tracing operation becomes a no-op, when credentials are missing or
the Langfuse host cannot be reached. Chat handling never depends on it.
"""

import logging
from typing import Any, Optional

from langfuse import Langfuse

from ..config import LangfuseConfig

logger = logging.getLogger(__name__)


class TracingClient:
    """
    Langfuse client wrapper.

    Observations are created with explicit ``trace_context`` parents rather
    than OTEL "current" context, so a span may start and end on a worker
    thread different from the one that opened the trace.
    """

    def __init__(
        self,
        public_key: str = "",
        secret_key: str = "",
        host: str = "",
        debug: bool = False,
    ):
        self._client: Optional[Langfuse] = None
        self._enabled = False
        self._error: Optional[str] = None

        if not public_key or not secret_key:
            self._error = "Langfuse credentials not configured"
            logger.debug(f"Tracing disabled: {self._error}")
            return

        if host and not host.startswith(("http://", "https://")):
            logger.warning(
                f"LANGFUSE_HOST '{host}' has no protocol. "
                "Expected format: http://hostname:port or https://hostname:port."
            )

        kwargs: dict[str, Any] = {
            "public_key": public_key,
            "secret_key": secret_key,
            "debug": debug,
        }
        if host:
            kwargs["host"] = host

        try:
            self._client = Langfuse(**kwargs)
        except Exception as e:
            self._error = f"Failed to initialize Langfuse client: {e}"
            logger.warning(f"Tracing disabled: {self._error}")
            return

        if self._check_auth():
            self._enabled = True
            logger.info(f"Langfuse tracing enabled (host: {host or 'default'})")

    @classmethod
    def from_config(cls, langfuse_config: LangfuseConfig) -> "TracingClient":
        return cls(
            public_key=langfuse_config.public_key,
            secret_key=langfuse_config.secret_key,
            host=langfuse_config.host,
            debug=langfuse_config.debug,
        )

    def _check_auth(self) -> bool:
        """Verify the host is reachable and the keys are accepted."""
        try:
            ok = self._client.auth_check()
        except Exception as e:
            ok = False
            self._error = f"Langfuse connectivity check failed: {e}"
        else:
            if not ok:
                self._error = "Langfuse auth_check() rejected the configured credentials"
        if not ok:
            logger.warning(f"Tracing disabled: {self._error}")
            self._client = None
        return ok

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def error(self) -> Optional[str]:
        """Reason tracing is disabled, if it is."""
        return self._error

    @property
    def client(self) -> Optional[Langfuse]:
        return self._client

    def start_observation(self, as_type: str, **kwargs) -> Any:
        """
        Start a span or generation that the caller ends explicitly.

        Args:
            as_type: "span" or "generation"
            **kwargs: Observation attributes (name, input, metadata, trace_context, ...)

        Returns:
            The Langfuse observation, or None when tracing is off or the call failed
        """
        if not self._enabled or self._client is None:
            return None
        try:
            if as_type == "generation":
                return self._client.start_generation(**kwargs)
            return self._client.start_span(**kwargs)
        except Exception as e:
            logger.warning(f"Failed to start {as_type} '{kwargs.get('name')}': {e}")
            return None

    def flush(self) -> None:
        if not self._enabled or not self._client:
            return
        try:
            self._client.flush()
        except Exception as e:
            logger.warning(f"Failed to flush tracing events: {e}")

    def shutdown(self) -> None:
        """Flush remaining events and stop the background exporter."""
        if not self._enabled or not self._client:
            return
        try:
            self._client.shutdown()
            logger.info("Langfuse tracing client shutdown complete")
        except Exception as e:
            logger.warning(f"Error during tracing client shutdown: {e}")


# Global singleton instance
_tracing_client: Optional[TracingClient] = None


def init_tracing_client(langfuse_config: LangfuseConfig) -> TracingClient:
    """Initialize the global tracing client from configuration."""
    global _tracing_client
    _tracing_client = TracingClient.from_config(langfuse_config)
    return _tracing_client


def get_tracing_client() -> Optional[TracingClient]:
    return _tracing_client


def shutdown_tracing() -> None:
    """Shutdown and clear the global tracing client."""
    global _tracing_client
    if _tracing_client:
        _tracing_client.shutdown()
        _tracing_client = None
