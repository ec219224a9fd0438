"""
In-memory ledger node for tests

Answers the JSON-RPC methods LedgerClient uses through httpx.MockTransport
and executes the booking program's instructions against an account map.
A transaction either applies all of its instructions or none of them.
"""
import base64
import copy
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

import httpx
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.transaction import Transaction

from dineledger.core.codec import ByteReader, instruction_discriminator
from dineledger.models.dish_stats import DishStats
from dineledger.models.review import (MAX_CONFIDENCE, MAX_RATING,
                                      MIN_CONFIDENCE, MIN_RATING, Review)
from dineledger.models.user_stats import UserStats

BLOCKHASH = Hash(bytes([7] * 32))
LAST_VALID_BLOCK_HEIGHT = 150
RECORD_RENT = 1_000_000

INITIALIZE_USER_STATS = instruction_discriminator("initialize_user_stats")
INITIALIZE_DISH_STATS = instruction_discriminator("initialize_dish_stats")
BOOK_TABLE = instruction_discriminator("book_table")
SUBMIT_REVIEW = instruction_discriminator("submit_review")


@dataclass
class FakeAccount:
    data: bytes
    lamports: int
    owner: str


class RpcFailure(Exception):
    """Becomes a JSON-RPC error object"""

    def __init__(self, code: int, message: str, data: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data


class InstructionFailure(Exception):
    """An instruction failed; the whole transaction is rolled back"""

    def __init__(self, index: int, code: int, logs: List[str]):
        super().__init__(f"instruction {index} failed with {code}")
        self.index = index
        self.code = code
        self.logs = logs


def _anchor_error(code: int, name: str, message: str) -> List[str]:
    return [f"AnchorError occurred. Error Code: {name}. Error Number: {code}. Error Message: {message}."]


class FakeLedger:
    """
    Fake node state

    Knobs:
    - auto_confirm: mark successful transactions confirmed immediately
    - fail_on_confirm: structured error reported by the status of the next
      transactions instead of executing them
    - unreachable / failing_methods: raise connection errors
    """

    def __init__(self, program_id: Pubkey):
        self.program_id = program_id
        self.accounts: Dict[str, FakeAccount] = {}
        self.statuses: Dict[str, Dict[str, Any]] = {}
        self.processed: Set[str] = set()
        self.sent: List[Transaction] = []
        self.calls: List[str] = []
        self.block_height = 100
        self.auto_confirm = True
        self.fail_on_confirm: Optional[Dict[str, Any]] = None
        self.unreachable = False
        self.failing_methods: Set[str] = set()

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def fund(self, owner: Pubkey, lamports: int):
        account = self.accounts.get(str(owner))
        if account is None:
            self.accounts[str(owner)] = FakeAccount(b"", lamports, str(SYSTEM_PROGRAM_ID))
        else:
            account.lamports = lamports

    def balance(self, owner: Pubkey) -> int:
        account = self.accounts.get(str(owner))
        return account.lamports if account else 0

    def put_record(self, address: Pubkey, data: bytes):
        """Place raw record data owned by the program"""
        self.accounts[str(address)] = FakeAccount(bytes(data), RECORD_RENT, str(self.program_id))

    def record_data(self, address: Pubkey) -> Optional[bytes]:
        account = self.accounts.get(str(address))
        return account.data if account else None

    def confirm(self, signature: str):
        self.statuses[signature] = self._status(None)

    def expire(self):
        """Advance past the validity window of the current blockhash"""
        self.block_height = LAST_VALID_BLOCK_HEIGHT + 1

    def instruction_names(self, transaction: Transaction) -> List[str]:
        """Names of the instructions carried by a sent transaction"""
        names = {
            INITIALIZE_USER_STATS: "initialize_user_stats",
            INITIALIZE_DISH_STATS: "initialize_dish_stats",
            BOOK_TABLE: "book_table",
            SUBMIT_REVIEW: "submit_review",
        }
        message = transaction.message
        result = []
        for instruction in message.instructions:
            program = message.account_keys[instruction.program_id_index]
            if program == SYSTEM_PROGRAM_ID:
                result.append("transfer")
            else:
                result.append(names.get(bytes(instruction.data)[:8], "unknown"))
        return result

    # ------------------------------------------------------------------
    # JSON-RPC
    # ------------------------------------------------------------------

    def handle(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        method = payload["method"]
        self.calls.append(method)
        if self.unreachable or method in self.failing_methods:
            raise httpx.ConnectError("Connection refused", request=request)

        handler = getattr(self, f"_rpc_{method}", None)
        if handler is None:
            return httpx.Response(200, json={
                "jsonrpc": "2.0", "id": payload["id"],
                "error": {"code": -32601, "message": "Method not found"},
            })
        try:
            result = handler(payload.get("params") or [])
        except RpcFailure as failure:
            error = {"code": failure.code, "message": failure.message}
            if failure.data is not None:
                error["data"] = failure.data
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "error": error})
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "result": result})

    def _context(self) -> Dict[str, Any]:
        return {"slot": self.block_height}

    def _status(self, err: Any) -> Dict[str, Any]:
        return {"slot": self.block_height, "confirmations": 1, "err": err, "confirmationStatus": "confirmed"}

    @staticmethod
    def _encode(account: FakeAccount) -> Dict[str, Any]:
        return {
            "data": [base64.b64encode(account.data).decode("ascii"), "base64"],
            "lamports": account.lamports,
            "owner": account.owner,
            "executable": False,
            "rentEpoch": 0,
        }

    def _rpc_getAccountInfo(self, params):
        account = self.accounts.get(params[0])
        return {"context": self._context(), "value": self._encode(account) if account else None}

    def _rpc_getProgramAccounts(self, params):
        owner = params[0]
        filters = (params[1] if len(params) > 1 else {}).get("filters", [])
        matches = []
        for address, account in self.accounts.items():
            if account.owner != owner:
                continue
            if all(self._memcmp_matches(account.data, f["memcmp"]) for f in filters):
                matches.append({"pubkey": address, "account": self._encode(account)})
        return matches

    @staticmethod
    def _memcmp_matches(data: bytes, memcmp: Dict[str, Any]) -> bool:
        if memcmp.get("encoding") == "base64":
            expected = base64.b64decode(memcmp["bytes"])
        else:
            expected = bytes(Pubkey.from_string(memcmp["bytes"]))
        offset = memcmp["offset"]
        return data[offset:offset + len(expected)] == expected

    def _rpc_getBalance(self, params):
        return {"context": self._context(), "value": self.balance(Pubkey.from_string(params[0]))}

    def _rpc_getLatestBlockhash(self, params):
        return {
            "context": self._context(),
            "value": {"blockhash": str(BLOCKHASH), "lastValidBlockHeight": LAST_VALID_BLOCK_HEIGHT},
        }

    def _rpc_getBlockHeight(self, params):
        return self.block_height

    def _rpc_getSignatureStatuses(self, params):
        return {"context": self._context(), "value": [self.statuses.get(sig) for sig in params[0]]}

    def _rpc_sendTransaction(self, params):
        transaction = Transaction.from_bytes(base64.b64decode(params[0]))
        signature = str(transaction.signatures[0])
        if signature in self.processed:
            raise RpcFailure(
                -32002,
                "Transaction simulation failed: This transaction has already been processed",
                {"err": "AlreadyProcessed", "logs": []},
            )
        self.sent.append(transaction)

        if self.fail_on_confirm is not None:
            self.processed.add(signature)
            self.statuses[signature] = self._status(self.fail_on_confirm)
            return signature

        staged = copy.deepcopy(self.accounts)
        try:
            self._execute(transaction, staged)
        except InstructionFailure as failure:
            raise RpcFailure(
                -32002,
                f"Transaction simulation failed: Error processing Instruction {failure.index}: "
                f"custom program error: 0x{failure.code:x}",
                {"err": {"InstructionError": [failure.index, {"Custom": failure.code}]}, "logs": failure.logs},
            )
        self.accounts = staged
        self.processed.add(signature)
        if self.auto_confirm:
            self.confirm(signature)
        return signature

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _execute(self, transaction: Transaction, state: Dict[str, FakeAccount]):
        message = transaction.message
        keys = message.account_keys
        for index, instruction in enumerate(message.instructions):
            program = keys[instruction.program_id_index]
            accounts = [keys[i] for i in instruction.accounts]
            data = bytes(instruction.data)
            if program == SYSTEM_PROGRAM_ID:
                self._transfer(index, accounts, data, state)
            elif program == self.program_id:
                self._program(index, accounts, data, state)
            else:
                raise InstructionFailure(index, 0, [f"Unknown program {program}"])

    def _transfer(self, index: int, accounts: List[Pubkey], data: bytes, state: Dict[str, FakeAccount]):
        reader = ByteReader(data)
        reader.read_u32()
        lamports = reader.read_u64()
        source, destination = str(accounts[0]), str(accounts[1])
        available = state[source].lamports if source in state else 0
        if available < lamports:
            raise InstructionFailure(index, 1, [
                f"Program {SYSTEM_PROGRAM_ID} invoke [1]",
                f"Transfer: insufficient lamports {available}, need {lamports}",
                f"Program {SYSTEM_PROGRAM_ID} failed: custom program error: 0x1",
            ])
        state[source].lamports -= lamports
        if destination not in state:
            state[destination] = FakeAccount(b"", 0, str(SYSTEM_PROGRAM_ID))
        state[destination].lamports += lamports

    def _create(self, index: int, state: Dict[str, FakeAccount], address: Pubkey, data: bytes):
        if str(address) in state:
            raise InstructionFailure(index, 0, [
                f"Allocate: account Address {{ address: {address}, base: None }} already in use",
            ])
        state[str(address)] = FakeAccount(data, RECORD_RENT, str(self.program_id))

    def _program(self, index: int, accounts: List[Pubkey], data: bytes, state: Dict[str, FakeAccount]):
        discriminator = data[:8]
        reader = ByteReader(data, 8)

        if discriminator == INITIALIZE_USER_STATS:
            address, restaurant, user = accounts[:3]
            record = UserStats(user=user, restaurant=restaurant, visit_count=0)
            self._create(index, state, address, record.to_account_data())

        elif discriminator == INITIALIZE_DISH_STATS:
            name = reader.read_string()
            address, dish, user = accounts[:3]
            record = DishStats(user=user, dish=dish, count=0, name=name)
            self._create(index, state, address, record.to_account_data())

        elif discriminator == BOOK_TABLE:
            reader.read_pubkey_vec()
            address, restaurant, user = accounts[:3]
            existing = state.get(str(address))
            if existing is None:
                record = UserStats(user=user, restaurant=restaurant, visit_count=1)
                state[str(address)] = FakeAccount(record.to_account_data(), RECORD_RENT, str(self.program_id))
            else:
                record = UserStats.from_account_data(existing.data)
                existing.data = record.model_copy(update={"visit_count": record.visit_count + 1}).to_account_data()

            remaining = accounts[3:]
            for i in range(0, len(remaining), 2):
                dish_account = state.get(str(remaining[i]))
                if dish_account is None:
                    raise InstructionFailure(index, 3012, _anchor_error(
                        3012, "AccountNotInitialized", "The program expected this account to be already initialized"
                    ))
                dish_record = DishStats.from_account_data(dish_account.data)
                dish_account.data = dish_record.model_copy(update={"count": dish_record.count + 1}).to_account_data()

        elif discriminator == SUBMIT_REVIEW:
            rating = reader.read_u8()
            text = reader.read_string()
            confidence_level = reader.read_u8()
            address, restaurant, user = accounts[:3]
            if not MIN_RATING <= rating <= MAX_RATING:
                raise InstructionFailure(index, 6000, _anchor_error(6000, "InvalidRating", "Rating must be between 1 and 5"))
            if not MIN_CONFIDENCE <= confidence_level <= MAX_CONFIDENCE:
                raise InstructionFailure(index, 6002, _anchor_error(
                    6002, "InvalidConfidenceLevel", "Confidence level must be between 1 and 10"
                ))
            existing = state.get(str(address))
            if existing is not None and Review.from_account_data(existing.data).text:
                raise InstructionFailure(index, 6001, _anchor_error(
                    6001, "ReviewAlreadyExists", "Review already exists for this user and restaurant"
                ))
            record = Review(
                user=user,
                restaurant=restaurant,
                rating=rating,
                text=text,
                confidence_level=confidence_level,
            )
            state[str(address)] = FakeAccount(record.to_account_data(), RECORD_RENT, str(self.program_id))

        else:
            raise InstructionFailure(index, 101, _anchor_error(
                101, "InstructionFallbackNotFound", "Fallback functions are not supported"
            ))
