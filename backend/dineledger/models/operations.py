"""
Operation descriptors - what a transaction should do, before it is encoded
"""
from abc import ABC, abstractmethod
from typing import ClassVar, List, Tuple

from pydantic import BaseModel, ConfigDict, Field
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.system_program import TransferParams, transfer

from dineledger.core.codec import (instruction_discriminator, pack_pubkey_vec,
                                   pack_string, pack_u8)


class Operation(BaseModel, ABC):
    """One step of a transaction"""
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    kind: ClassVar[str] = "operation"
    # Creates a record and nothing else
    is_initialization: ClassVar[bool] = False

    @abstractmethod
    def to_instruction(self, program_id: Pubkey) -> Instruction:
        """Encode as an instruction for the given program"""

    def describe(self) -> str:
        return self.kind


class TransferOperation(Operation):
    """Plain lamport transfer from the user to the restaurant wallet"""
    kind: ClassVar[str] = "transfer"

    payer: Pubkey
    payee: Pubkey
    lamports: int = Field(gt=0)

    def to_instruction(self, program_id: Pubkey) -> Instruction:
        return transfer(TransferParams(from_pubkey=self.payer, to_pubkey=self.payee, lamports=self.lamports))

    def describe(self) -> str:
        return f"transfer {self.lamports} lamports to {self.payee}"


class InitializeUserStatsOperation(Operation):
    """Create the visit counter for (user, restaurant)"""
    kind: ClassVar[str] = "initialize_user_stats"
    is_initialization: ClassVar[bool] = True

    address: Pubkey
    user: Pubkey
    restaurant: Pubkey

    def to_instruction(self, program_id: Pubkey) -> Instruction:
        return Instruction(
            program_id,
            instruction_discriminator("initialize_user_stats"),
            [
                AccountMeta(self.address, is_signer=False, is_writable=True),
                AccountMeta(self.restaurant, is_signer=False, is_writable=False),
                AccountMeta(self.user, is_signer=True, is_writable=True),
                AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
            ],
        )


class InitializeDishStatsOperation(Operation):
    """Create the order counter for (user, dish)"""
    kind: ClassVar[str] = "initialize_dish_stats"
    is_initialization: ClassVar[bool] = True

    address: Pubkey
    user: Pubkey
    dish: Pubkey
    dish_name: str

    def to_instruction(self, program_id: Pubkey) -> Instruction:
        return Instruction(
            program_id,
            instruction_discriminator("initialize_dish_stats") + pack_string(self.dish_name),
            [
                AccountMeta(self.address, is_signer=False, is_writable=True),
                AccountMeta(self.dish, is_signer=False, is_writable=False),
                AccountMeta(self.user, is_signer=True, is_writable=True),
                AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
            ],
        )

    def describe(self) -> str:
        return f"initialize dish stats for {self.dish_name!r}"


class BookTableOperation(Operation):
    """
    Record a visit and one order per dish

    The program walks the auxiliary accounts two at a time: the dish's
    stats record followed by the dish identity.
    """
    kind: ClassVar[str] = "book_table"

    user_stats_address: Pubkey
    user: Pubkey
    restaurant: Pubkey
    dish_accounts: List[Tuple[Pubkey, Pubkey]] = Field(default_factory=list)

    @property
    def dish_ids(self) -> List[Pubkey]:
        return [dish for _stats, dish in self.dish_accounts]

    def remaining_accounts(self) -> List[AccountMeta]:
        metas = []
        for stats_address, dish in self.dish_accounts:
            metas.append(AccountMeta(stats_address, is_signer=False, is_writable=True))
            metas.append(AccountMeta(dish, is_signer=False, is_writable=False))
        return metas

    def to_instruction(self, program_id: Pubkey) -> Instruction:
        accounts = [
            AccountMeta(self.user_stats_address, is_signer=False, is_writable=True),
            AccountMeta(self.restaurant, is_signer=False, is_writable=False),
            AccountMeta(self.user, is_signer=True, is_writable=True),
        ]
        return Instruction(
            program_id,
            instruction_discriminator("book_table") + pack_pubkey_vec(self.dish_ids),
            accounts + self.remaining_accounts(),
        )

    def describe(self) -> str:
        return f"book table at {self.restaurant} with {len(self.dish_accounts)} dish(es)"


class SubmitReviewOperation(Operation):
    """Write the user's review of a restaurant"""
    kind: ClassVar[str] = "submit_review"

    address: Pubkey
    user: Pubkey
    restaurant: Pubkey
    rating: int
    text: str
    confidence_level: int

    def to_instruction(self, program_id: Pubkey) -> Instruction:
        data = (
            instruction_discriminator("submit_review")
            + pack_u8(self.rating)
            + pack_string(self.text)
            + pack_u8(self.confidence_level)
        )
        return Instruction(
            program_id,
            data,
            [
                AccountMeta(self.address, is_signer=False, is_writable=True),
                AccountMeta(self.restaurant, is_signer=False, is_writable=False),
                AccountMeta(self.user, is_signer=True, is_writable=True),
                AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
            ],
        )
