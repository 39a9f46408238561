"""
Chain Client for the SafeGig registry.
Narrow async wrapper over the JSON-RPC endpoint used by the sync engine.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

from eth_utils import keccak, to_hex
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from web3 import AsyncWeb3
from web3.exceptions import BadFunctionCallOutput, ContractLogicError
from web3.providers.rpc import AsyncHTTPProvider

from app.core.config import settings
from app.core.exceptions import MirrorException, RpcRangeTooLargeError, RpcUnavailableError
from app.core.logging import get_logger
from app.infrastructure.blockchain.address_utils import checksum_address
from app.infrastructure.blockchain.registry_events import (
    REGISTRY_ABI,
    OnChainProfile,
    RawEvent,
    decode_user_profile,
)

logger = get_logger(__name__)

# Provider messages that mean "this eth_getLogs window is too big"
RANGE_ERROR_MARKERS = (
    "block range",
    "range is too large",
    "query returned more than",
    "exceeds max results",
    "response size exceeded",
    "too many blocks",
    "max is 1k blocks",
)
# Throttling replies; these stay retryable transport failures
RATE_LIMIT_MARKERS = (
    "rate limit",
    "request rate",
    "too many requests",
    "throttl",
)
RATE_LIMIT_CODES = (429,)


def _error_messages(error: Exception) -> List[str]:
    messages = [str(error).lower()]
    for arg in getattr(error, "args", ()):
        if isinstance(arg, dict):
            messages.append(str(arg.get("message", "")).lower())
    rpc_response = getattr(error, "rpc_response", None)
    if isinstance(rpc_response, dict):
        rpc_error = rpc_response.get("error") or {}
        messages.append(str(rpc_error.get("message", "")).lower())
    return messages


def _error_codes(error: Exception) -> List[Any]:
    codes = [arg.get("code") for arg in getattr(error, "args", ()) if isinstance(arg, dict)]
    rpc_response = getattr(error, "rpc_response", None)
    if isinstance(rpc_response, dict):
        codes.append((rpc_response.get("error") or {}).get("code"))
    status = getattr(getattr(error, "response", None), "status_code", None)
    if status is not None:
        codes.append(status)
    return codes


def is_rate_limit_error(error: Exception) -> bool:
    """Return True if the provider is throttling rather than rejecting the query."""
    if any(code in RATE_LIMIT_CODES for code in _error_codes(error)):
        return True
    return any(
        marker in message for message in _error_messages(error) for marker in RATE_LIMIT_MARKERS
    )


def is_range_error(error: Exception) -> bool:
    """
    Return True if a provider error is a window-size rejection.

    Error codes are shared with throttling (-32005 in particular), so only
    the message decides; rate-limit replies never count.
    """
    if is_rate_limit_error(error):
        return False
    return any(
        marker in message for message in _error_messages(error) for marker in RANGE_ERROR_MARKERS
    )


def event_topic(event_signature: str) -> str:
    """Topic0 for an event signature; already-hashed topics pass through."""
    if event_signature.startswith("0x") and len(event_signature) == 66:
        return event_signature.lower()
    return to_hex(keccak(text=event_signature))


def _hex_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value.lower()
    return to_hex(value)


class ChainClient:
    """Client for the chain queries the sync engine needs."""

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        w3: Optional[AsyncWeb3] = None,
        timeout: Optional[float] = None,
        retry_attempts: Optional[int] = None,
    ):
        """
        Initialize chain client.

        Args:
            rpc_url: JSON-RPC endpoint (defaults to EVM_RPC_URL)
            w3: Pre-built AsyncWeb3 instance, mainly for tests
            timeout: Per-call timeout in seconds
            retry_attempts: Attempts for transient transport failures
        """
        self.rpc_url = rpc_url or settings.EVM_RPC_URL
        self.timeout = timeout if timeout is not None else settings.RPC_TIMEOUT_SECONDS
        self.retry_attempts = retry_attempts or settings.RPC_RETRY_ATTEMPTS
        self.w3 = w3 or AsyncWeb3(AsyncHTTPProvider(self.rpc_url))
        logger.info(f"Chain client using RPC: {self.rpc_url}")

    async def _call(self, operation: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        """Run one RPC call with a timeout, retrying only RpcUnavailableError."""
        result = None
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
            retry=retry_if_exception_type(RpcUnavailableError),
            reraise=True,
        ):
            with attempt:
                result = await self._guarded(operation, factory)
        return result

    async def _guarded(self, operation: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        try:
            return await asyncio.wait_for(factory(), timeout=self.timeout)
        except MirrorException:
            raise
        except asyncio.TimeoutError as e:
            logger.warning(f"RPC {operation} timed out after {self.timeout}s")
            raise RpcUnavailableError(
                f"RPC {operation} timed out", {"operation": operation, "timeout": self.timeout}
            ) from e
        except Exception as e:
            logger.warning(f"RPC {operation} failed: {e}")
            raise RpcUnavailableError(
                f"RPC {operation} failed: {e}", {"operation": operation}
            ) from e

    async def current_height(self) -> int:
        """
        Get the current block height.

        Raises:
            RpcUnavailableError: If the endpoint cannot be reached
        """

        async def _height():
            return await self.w3.eth.block_number

        return int(await self._call("eth_blockNumber", _height))

    async def code_at(self, address: str) -> bytes:
        """
        Get deployed bytecode at an address. Used by health checks only.

        Raises:
            RpcUnavailableError: If the endpoint cannot be reached
        """
        target = checksum_address(address)

        async def _code():
            return await self.w3.eth.get_code(target)

        return bytes(await self._call("eth_getCode", _code))

    async def query_events(
        self,
        address: str,
        event_signature: str,
        from_block: int,
        to_block: int,
    ) -> List[RawEvent]:
        """
        Query logs for one event signature in an inclusive block range.

        Args:
            address: Contract address
            event_signature: Event signature text or topic0 hash
            from_block: First block
            to_block: Last block

        Returns:
            Events sorted by (block number, log index)

        Raises:
            RpcRangeTooLargeError: If the provider rejects the window
            RpcUnavailableError: On transport failure or throttling (retried first)
        """
        log_filter: Dict[str, Any] = {
            "address": checksum_address(address),
            "topics": [event_topic(event_signature)],
            "fromBlock": from_block,
            "toBlock": to_block,
        }

        async def _logs():
            try:
                return await self.w3.eth.get_logs(log_filter)
            except Exception as e:
                if is_rate_limit_error(e):
                    raise RpcUnavailableError(
                        "RPC eth_getLogs rate limited",
                        {"operation": "eth_getLogs", "provider_error": str(e)},
                    ) from e
                if is_range_error(e):
                    raise RpcRangeTooLargeError(
                        from_block, to_block, {"provider_error": str(e)}
                    ) from e
                raise

        logs = await self._call("eth_getLogs", _logs)
        events = [self._to_raw_event(log) for log in logs]
        events.sort(key=lambda e: e.position)
        return events

    async def get_user_profile(
        self, registry_address: str, wallet_address: str
    ) -> OnChainProfile:
        """
        Read a registered user's profile from the registry.

        Skills come from getUserSkills(address); a registry without that
        function yields an empty list.

        Raises:
            RpcUnavailableError: On transport failure
            EventDecodeError: If the returned struct is malformed
        """
        registry = self.w3.eth.contract(
            address=checksum_address(registry_address),
            abi=REGISTRY_ABI,
        )
        wallet = checksum_address(wallet_address)

        async def _profile():
            return await registry.functions.userProfiles(wallet).call()

        async def _skills():
            try:
                return await registry.functions.getUserSkills(wallet).call()
            except (ContractLogicError, BadFunctionCallOutput):
                return []

        result = await self._call("userProfiles", _profile)
        skills = await self._call("getUserSkills", _skills)
        return decode_user_profile(result, skills or [])

    @staticmethod
    def _to_raw_event(log: Any) -> RawEvent:
        tx_hash = log.get("transactionHash")
        return RawEvent(
            address=str(log["address"]).lower(),
            block_number=int(log["blockNumber"]),
            log_index=int(log["logIndex"]),
            topics=list(log["topics"]),
            data=log["data"],
            transaction_hash=_hex_or_none(tx_hash),
        )


_chain_client: Optional[ChainClient] = None


def get_chain_client() -> ChainClient:
    """Get the shared chain client, creating it on first use."""
    global _chain_client
    if _chain_client is None:
        _chain_client = ChainClient()
    return _chain_client
