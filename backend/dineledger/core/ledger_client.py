"""
JSON-RPC client for the remote ledger node
"""
import base64
import itertools
import time
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field
from solders.hash import Hash
from solders.pubkey import Pubkey

from dineledger.core import metrics
from dineledger.core.config import get_settings
from dineledger.core.logging_config import LoggingConfig

logger = LoggingConfig.get_logger(__name__)


class LedgerError(Exception):
    """Base exception for ledger client errors"""
    pass


class LedgerTransportError(LedgerError):
    """The node could not be reached or answered with an unusable response"""
    pass


class LedgerRpcError(LedgerError):
    """The node answered with a JSON-RPC error object"""

    def __init__(self, code: int, message: str, data: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data or {}

    @property
    def logs(self) -> List[str]:
        """Program logs attached to a failed simulation, if any"""
        logs = self.data.get("logs") if isinstance(self.data, dict) else None
        return list(logs or [])

    @property
    def err(self) -> Any:
        """Structured transaction error attached to a failed simulation, if any"""
        return self.data.get("err") if isinstance(self.data, dict) else None


class AccountInfo(BaseModel):
    """Account as returned by the node"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    data: bytes = b""
    lamports: int = 0
    owner: str
    executable: bool = False


class KeyedAccount(BaseModel):
    """Account together with its address"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    pubkey: Pubkey
    account: AccountInfo


class LatestBlockhash(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    blockhash: Hash
    last_valid_block_height: int


class SignatureStatus(BaseModel):
    slot: int = 0
    confirmations: Optional[int] = None
    err: Any = None
    confirmation_status: Optional[str] = Field(default=None)


class MemcmpFilter(BaseModel):
    """Server-side filter comparing bytes at an offset of the account data"""
    offset: int
    value: str
    encoding: Optional[str] = None

    @classmethod
    def for_pubkey(cls, offset: int, key: Pubkey) -> "MemcmpFilter":
        return cls(offset=offset, value=str(key))

    @classmethod
    def for_raw(cls, offset: int, raw: bytes) -> "MemcmpFilter":
        return cls(offset=offset, value=base64.b64encode(raw).decode("ascii"), encoding="base64")

    def to_rpc(self) -> Dict[str, Any]:
        memcmp: Dict[str, Any] = {"offset": self.offset, "bytes": self.value}
        if self.encoding:
            memcmp["encoding"] = self.encoding
        return {"memcmp": memcmp}


def _decode_account(value: Dict[str, Any]) -> AccountInfo:
    data_field = value.get("data") or ["", "base64"]
    if isinstance(data_field, list):
        encoded = data_field[0]
    else:
        encoded = data_field
    try:
        raw = base64.b64decode(encoded) if encoded else b""
    except (ValueError, TypeError) as e:
        raise LedgerTransportError(f"Account data is not valid base64: {e}") from e
    return AccountInfo(
        data=raw,
        lamports=value.get("lamports", 0),
        owner=value.get("owner", ""),
        executable=value.get("executable", False),
    )


class LedgerClient:
    """
    Client for the ledger node's JSON-RPC API

    One instance per endpoint; the underlying httpx client is created lazily
    and reused for every call.
    """

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        timeout: Optional[float] = None,
        commitment: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.rpc_url = rpc_url or settings.rpc_url
        self.timeout = timeout or settings.rpc_timeout_seconds
        self.commitment = commitment or settings.commitment
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._ids = itertools.count(1)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                limits=httpx.Limits(
                    max_keepalive_connections=5,
                    max_connections=10,
                ),
            )
        return self._client

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "LedgerClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def _request(self, method: str, params: List[Any]) -> Any:
        """
        Perform a single JSON-RPC call.

        Raises:
            LedgerTransportError: on connection, timeout, HTTP or decoding failures
            LedgerRpcError: when the node returns an error object
        """
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        started = time.monotonic()
        try:
            response = await self._get_client().post(self.rpc_url, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as e:
            metrics.record_rpc_request(method, "transport_error", time.monotonic() - started)
            raise LedgerTransportError(f"{method} timed out after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            metrics.record_rpc_request(method, "transport_error", time.monotonic() - started)
            raise LedgerTransportError(f"{method} failed with HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            metrics.record_rpc_request(method, "transport_error", time.monotonic() - started)
            raise LedgerTransportError(f"{method} failed: {e}") from e
        except ValueError as e:
            metrics.record_rpc_request(method, "transport_error", time.monotonic() - started)
            raise LedgerTransportError(f"{method} returned invalid JSON: {e}") from e

        duration = time.monotonic() - started
        if "error" in body and body["error"] is not None:
            error = body["error"]
            metrics.record_rpc_request(method, "rpc_error", duration)
            logger.debug(f"RPC {method} returned error: {error}")
            raise LedgerRpcError(
                code=error.get("code", 0),
                message=error.get("message", "Unknown RPC error"),
                data=error.get("data"),
            )

        metrics.record_rpc_request(method, "ok", duration)
        return body.get("result")

    async def get_account_info(self, address: Pubkey) -> Optional[AccountInfo]:
        """Fetch a single account; None when the address holds no account"""
        result = await self._request(
            "getAccountInfo",
            [str(address), {"encoding": "base64", "commitment": self.commitment}],
        )
        value = (result or {}).get("value")
        if value is None:
            return None
        return _decode_account(value)

    async def get_program_accounts(
        self,
        program_id: Pubkey,
        filters: Optional[List[MemcmpFilter]] = None,
    ) -> List[KeyedAccount]:
        """Fetch every account owned by a program that matches all filters"""
        config: Dict[str, Any] = {"encoding": "base64", "commitment": self.commitment}
        if filters:
            config["filters"] = [f.to_rpc() for f in filters]
        result = await self._request("getProgramAccounts", [str(program_id), config])

        accounts = []
        for entry in result or []:
            try:
                pubkey = Pubkey.from_string(entry["pubkey"])
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping program account with unusable address: {e}")
                continue
            accounts.append(KeyedAccount(pubkey=pubkey, account=_decode_account(entry.get("account") or {})))
        return accounts

    async def get_balance(self, address: Pubkey) -> int:
        result = await self._request("getBalance", [str(address), {"commitment": self.commitment}])
        return int((result or {}).get("value", 0))

    async def get_latest_blockhash(self) -> LatestBlockhash:
        result = await self._request("getLatestBlockhash", [{"commitment": self.commitment}])
        value = (result or {}).get("value") or {}
        try:
            return LatestBlockhash(
                blockhash=Hash.from_string(value["blockhash"]),
                last_valid_block_height=int(value["lastValidBlockHeight"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise LedgerTransportError(f"Malformed getLatestBlockhash response: {e}") from e

    async def get_block_height(self) -> int:
        result = await self._request("getBlockHeight", [{"commitment": self.commitment}])
        return int(result or 0)

    async def send_transaction(
        self,
        raw_transaction: bytes,
        skip_preflight: bool = False,
        preflight_commitment: Optional[str] = None,
    ) -> str:
        """Submit a signed, serialized transaction; returns its signature"""
        config = {
            "encoding": "base64",
            "skipPreflight": skip_preflight,
            "preflightCommitment": preflight_commitment or get_settings().preflight_commitment,
        }
        encoded = base64.b64encode(raw_transaction).decode("ascii")
        return await self._request("sendTransaction", [encoded, config])

    async def get_signature_status(self, signature: str) -> Optional[SignatureStatus]:
        """Current status of a submitted transaction; None while unknown to the node"""
        result = await self._request(
            "getSignatureStatuses",
            [[signature], {"searchTransactionHistory": False}],
        )
        values = (result or {}).get("value") or [None]
        status = values[0]
        if status is None:
            return None
        return SignatureStatus(
            slot=status.get("slot", 0),
            confirmations=status.get("confirmations"),
            err=status.get("err"),
            confirmation_status=status.get("confirmationStatus"),
        )
