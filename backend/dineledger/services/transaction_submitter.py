"""
Transaction submitter - one atomic transaction per user action
"""
import asyncio
import time
from enum import Enum
from typing import List, Optional, Sequence, Set

from pydantic import BaseModel, Field
from solders.message import Message
from solders.signature import Signature
from solders.transaction import Transaction

from dineledger.core import metrics
from dineledger.core.config import COMMITMENT_LEVELS
from dineledger.core.error_types import (ClassifiedError, ErrorKind,
                                         classify_error)
from dineledger.core.ledger_client import LedgerError, SignatureStatus
from dineledger.core.logging_config import LoggingConfig
from dineledger.core.program import ProgramContext
from dineledger.core.signer import SignerError
from dineledger.models.operations import Operation

logger = LoggingConfig.get_logger(__name__)


class SubmissionStatus(str, Enum):
    CONFIRMED = "confirmed"
    PENDING = "pending"
    ALREADY_PROCESSED = "already_processed"


class SubmissionResult(BaseModel):
    """Outcome of a submission; always carries the tracking signature"""
    signature: str
    status: SubmissionStatus
    operations: List[str] = Field(default_factory=list)
    kind: Optional[ErrorKind] = None

    @property
    def confirmed(self) -> bool:
        return self.status == SubmissionStatus.CONFIRMED

    @property
    def pending(self) -> bool:
        return self.status == SubmissionStatus.PENDING

    @property
    def user_message(self) -> str:
        if self.status == SubmissionStatus.CONFIRMED:
            return f"Transaction confirmed: {self.signature}"
        if self.status == SubmissionStatus.PENDING:
            return (
                f"Transaction sent but not confirmed yet. "
                f"Check its status later with signature {self.signature}"
            )
        return f"Transaction was already processed: {self.signature}"


def _commitment_reached(status: SignatureStatus, required: str) -> bool:
    if status.confirmation_status is None:
        # Older nodes report rooted transactions with no status and no confirmations
        return status.confirmations is None
    try:
        return COMMITMENT_LEVELS.index(status.confirmation_status) >= COMMITMENT_LEVELS.index(required)
    except ValueError:
        return False


class TransactionSubmitter:
    """
    Bundles operations into one transaction, signs, sends and waits.

    Confirmation polling races a fixed timeout. A watcher that loses the
    race is not cancelled; it keeps running until it resolves and its
    outcome is only logged.
    """

    def __init__(
        self,
        context: ProgramContext,
        confirmation_timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
    ):
        self.context = context
        settings = context.settings
        self.confirmation_timeout = (
            settings.confirmation_timeout_seconds if confirmation_timeout is None else confirmation_timeout
        )
        self.poll_interval = settings.confirmation_poll_interval_seconds if poll_interval is None else poll_interval
        self._abandoned_watchers: Set[asyncio.Task] = set()

    @property
    def abandoned_watchers(self) -> Set[asyncio.Task]:
        """Watchers that lost the race and are still running"""
        return set(self._abandoned_watchers)

    async def submit(self, operations: Sequence[Operation]) -> SubmissionResult:
        """
        Submit operations as one all-or-nothing transaction

        Args:
            operations: Ordered operations

        Returns:
            SubmissionResult - confirmed, pending (timeout) or already processed

        Raises:
            ClassifiedError: for every other failure
        """
        if not operations:
            raise ValueError("Cannot submit an empty operation list")

        client = self.context.client
        settings = self.context.settings
        signer = self.context.require_signer()
        kinds = [op.kind for op in operations]
        error_context = {"operations": kinds}

        instructions = [op.to_instruction(self.context.program_id) for op in operations]

        try:
            latest = await client.get_latest_blockhash()
        except LedgerError as e:
            metrics.record_submission("failed")
            raise classify_error(e, {**error_context, "stage": "blockhash"}) from e

        message = Message.new_with_blockhash(instructions, signer.public_key, latest.blockhash)
        transaction = Transaction.new_unsigned(message)

        try:
            signed = await signer.sign_transaction(transaction)
        except SignerError as e:
            metrics.record_submission("failed")
            raise classify_error(e, {**error_context, "stage": "sign"}) from e
        if not signed.signatures or signed.signatures[0] == Signature.default():
            metrics.record_submission("failed")
            raise classify_error(SignerError("Signer returned an unsigned transaction"), error_context)

        signature = str(signed.signatures[0])
        LoggingConfig.set_context(signature=signature)
        error_context["signature"] = signature
        logger.info(f"Sending transaction {signature} with {len(operations)} operation(s): {', '.join(kinds)}")

        try:
            sent = await client.send_transaction(
                bytes(signed),
                skip_preflight=settings.skip_preflight,
                preflight_commitment=settings.preflight_commitment,
            )
        except LedgerError as e:
            classified = classify_error(e, {**error_context, "stage": "send"})
            race = classified.kind == ErrorKind.ALREADY_PROCESSED and classified.details.get("initialization_race")
            if race and not self._only_initializations(operations):
                # The whole bundle was rolled back, not only the initialization
                logger.warning(f"Transaction {signature} lost an initialization race; nothing was applied")
                metrics.record_submission("failed")
                metrics.record_classified_error(ErrorKind.INITIALIZATION_RACE.value)
                raise ClassifiedError(
                    ErrorKind.INITIALIZATION_RACE,
                    f"A record initialized by {signature} was created concurrently; the transaction was not applied",
                    details=classified.details,
                ) from e
            if classified.kind == ErrorKind.ALREADY_PROCESSED:
                logger.warning(f"Transaction {signature} was likely already processed. Assuming success.")
                metrics.record_submission("already_processed")
                return SubmissionResult(
                    signature=signature,
                    status=SubmissionStatus.ALREADY_PROCESSED,
                    operations=kinds,
                    kind=ErrorKind.ALREADY_PROCESSED,
                )
            logger.error(f"Sending transaction {signature} failed: {classified.kind.value}: {classified.message}")
            metrics.record_submission("failed")
            raise classified from e

        if sent and sent != signature:
            logger.warning(f"Node reported signature {sent}, expected {signature}")

        return await self._await_confirmation(signature, latest.last_valid_block_height, kinds)

    @staticmethod
    def _only_initializations(operations: Sequence[Operation]) -> bool:
        return all(op.is_initialization for op in operations)

    async def _await_confirmation(
        self,
        signature: str,
        last_valid_block_height: int,
        kinds: List[str],
    ) -> SubmissionResult:
        started = time.monotonic()
        watcher = asyncio.ensure_future(self._watch_confirmation(signature, last_valid_block_height))
        done, _ = await asyncio.wait({watcher}, timeout=self.confirmation_timeout)
        waited = time.monotonic() - started

        if watcher not in done:
            self._abandon(watcher, signature)
            logger.warning(
                f"Transaction {signature} not confirmed within {self.confirmation_timeout}s; reporting it as pending"
            )
            metrics.record_submission("pending", waited)
            return SubmissionResult(
                signature=signature,
                status=SubmissionStatus.PENDING,
                operations=kinds,
                kind=ErrorKind.SUBMISSION_TIMEOUT,
            )

        try:
            status = watcher.result()
        except LedgerError as e:
            # Sent already; it may still land
            logger.warning(f"Could not confirm {signature} with the node: {e}; reporting it as pending")
            metrics.record_submission("pending", waited)
            return SubmissionResult(
                signature=signature,
                status=SubmissionStatus.PENDING,
                operations=kinds,
                kind=ErrorKind.SUBMISSION_TIMEOUT,
            )
        except ClassifiedError:
            metrics.record_submission("failed", waited)
            raise

        if status.err is not None:
            metrics.record_submission("failed", waited)
            metrics.record_classified_error(ErrorKind.CONFIRMATION_FAILED.value)
            raise ClassifiedError(
                ErrorKind.CONFIRMATION_FAILED,
                f"Transaction {signature} failed on-chain: {status.err}",
                details={"signature": signature, "err": status.err, "operations": kinds},
            )

        logger.info(f"Transaction {signature} confirmed ({status.confirmation_status}) in {waited:.2f}s")
        metrics.record_submission("confirmed", waited)
        return SubmissionResult(signature=signature, status=SubmissionStatus.CONFIRMED, operations=kinds)

    async def _watch_confirmation(self, signature: str, last_valid_block_height: int) -> SignatureStatus:
        """Poll until the transaction reaches the commitment, fails, or its blockhash expires"""
        client = self.context.client
        required = self.context.settings.commitment
        while True:
            status = await client.get_signature_status(signature)
            if status is not None and (status.err is not None or _commitment_reached(status, required)):
                return status

            block_height = await client.get_block_height()
            if block_height > last_valid_block_height:
                raise ClassifiedError(
                    ErrorKind.CONFIRMATION_FAILED,
                    f"Transaction {signature} expired before confirmation",
                    details={"signature": signature, "block_height": block_height},
                )
            await asyncio.sleep(self.poll_interval)

    def _abandon(self, watcher: asyncio.Task, signature: str):
        self._abandoned_watchers.add(watcher)

        def _on_done(task: asyncio.Task):
            self._abandoned_watchers.discard(task)
            if task.cancelled():
                logger.debug(f"Late confirmation watcher for {signature} was cancelled")
                return
            error = task.exception()
            if error is not None:
                logger.info(f"Late confirmation watcher for {signature} ended with: {error}")
            else:
                logger.info(f"Late confirmation for {signature}: {task.result().confirmation_status}")

        watcher.add_done_callback(_on_done)
