from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from ..core.recovery import ErrorCategory, ErrorContext, NetworkError, UnrecoverableError


class RpcError(UnrecoverableError):
    """JSON-RPC error object returned by a provider."""

    provider: str = "rpc"

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        data: Any = None,
    ):
        self.code = code
        self.data = data
        super().__init__(
            message,
            category=ErrorCategory.PROVIDER,
            context=ErrorContext(
                category=ErrorCategory.PROVIDER,
                recoverable=False,
                provider=self.provider,
                details={"code": code, "data": data},
            ),
        )

    @classmethod
    def from_rpc(cls, error: Any) -> "RpcError":
        if isinstance(error, dict):
            return cls(
                str(error.get("message") or error),
                code=error.get("code"),
                data=error.get("data"),
            )
        return cls(str(error))


class Provider(ABC):
    """Base provider interface"""

    name: str
    timeout_s: float = 10

    @abstractmethod
    async def ready(self) -> bool:
        """Check if provider is ready to serve requests"""
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Return provider health status"""
        pass


class JsonRpcProvider(Provider):
    """Provider speaking JSON-RPC 2.0 over HTTP."""

    error_class: type[RpcError] = RpcError

    def __init__(
        self,
        rpc_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout_s: Optional[float] = None,
    ) -> None:
        self.rpc_url = rpc_url
        if timeout_s is not None:
            self.timeout_s = timeout_s
        self._client = client
        self._request_id = 0

    async def ready(self) -> bool:
        return bool(self.rpc_url)

    async def health_check(self) -> Dict[str, Any]:
        if not await self.ready():
            return {"status": "disabled", "reason": f"{self.name} not configured"}

        try:
            result = await self._rpc_call("eth_chainId", [])
            return {"status": "healthy", "chainId": result}
        except Exception as exc:
            return {"status": "error", "reason": str(exc)}

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _rpc_call(self, method: str, params: list[Any]) -> Any:
        if not self._client or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout_s)

        self._request_id += 1
        try:
            response = await self._client.post(
                self.rpc_url,
                json={"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise NetworkError(
                f"{self.name} returned HTTP {exc.response.status_code} for {method}",
                provider=self.name,
            ) from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"{self.name} unreachable during {method}: {exc}", provider=self.name) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise NetworkError(
                f"{self.name} returned a non-JSON response for {method}",
                provider=self.name,
            ) from exc
        if not isinstance(payload, dict):
            raise NetworkError(f"{self.name} returned a malformed response for {method}", provider=self.name)
        if "error" in payload and payload["error"] is not None:
            raise self.error_class.from_rpc(payload["error"])
        return payload.get("result")
