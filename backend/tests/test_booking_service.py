"""
End-to-end booking scenarios against the in-memory ledger
"""
import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from dineledger.core.addressing import dish_identity, restaurant_identity
from dineledger.core.error_types import ClassifiedError, ErrorKind
from dineledger.models import DishStats, InitializeDishStatsOperation
from dineledger.services.booking_service import (BookingService,
                                                 parse_destination)
from dineledger.services.data_aggregator import DataAggregator
from dineledger.services.dish_registry import DishIdentityRegistry
from dineledger.services.instruction_composer import InstructionComposer

PAYMENT = 100_000_000


class ConcurrentDishComposer(InstructionComposer):
    """Another booking creates the dish records right after they were found missing"""

    def __init__(self, context, ledger):
        super().__init__(context)
        self.ledger = ledger

    async def compose(self, intent):
        operations = await super().compose(intent)
        for operation in operations:
            if isinstance(operation, InitializeDishStatsOperation):
                record = DishStats(user=operation.user, dish=operation.dish, name=operation.dish_name)
                self.ledger.put_record(operation.address, record.to_account_data())
        return operations


@pytest.mark.asyncio
async def test_first_booking(context, ledger):
    """Payment, two new dishes and the visit land in one transaction"""
    service = BookingService(context)
    destination = Pubkey.from_string(context.settings.default_payment_destination)

    result = await service.book_restaurant(1, ["Pasta", "Salad"], payment_lamports=PAYMENT)

    assert result.confirmed
    assert len(ledger.sent) == 1
    assert ledger.instruction_names(ledger.sent[0]) == [
        "transfer", "initialize_dish_stats", "initialize_dish_stats", "book_table",
    ]
    assert ledger.balance(destination) == PAYMENT

    dashboard = await DataAggregator(context).aggregate(context.user)
    assert dashboard.subjects[str(restaurant_identity(1))].visit_count == 1
    assert dashboard.dishes_by_name["Pasta"].count == 1
    assert dashboard.dishes_by_name["Salad"].count == 1


@pytest.mark.asyncio
async def test_rebooking_reuses_dish_records(context, ledger):
    service = BookingService(context)
    await service.book_restaurant(1, ["Pasta", "Salad"], payment_lamports=PAYMENT)

    result = await service.book_restaurant(1, ["Pasta"], payment_lamports=PAYMENT)

    assert result.confirmed
    assert ledger.instruction_names(ledger.sent[-1]) == ["transfer", "book_table"]
    dashboard = await DataAggregator(context).aggregate(context.user)
    assert dashboard.subjects[str(restaurant_identity(1))].visit_count == 2
    assert dashboard.dishes_by_name["Pasta"].count == 2
    assert dashboard.dishes_by_name["Salad"].count == 1


@pytest.mark.asyncio
async def test_booking_without_payment_or_dishes(context, ledger):
    result = await BookingService(context).book_restaurant(3)

    assert result.confirmed
    assert ledger.instruction_names(ledger.sent[0]) == ["book_table"]


@pytest.mark.asyncio
async def test_explicit_subject_initialization(context, ledger):
    service = BookingService(context, composer=InstructionComposer(context, ensure_subject_record=True))

    await service.book_restaurant(2, ["Soup"])
    await service.book_restaurant(2, ["Soup"])

    assert ledger.instruction_names(ledger.sent[0]) == ["initialize_dish_stats", "initialize_user_stats", "book_table"]
    assert ledger.instruction_names(ledger.sent[1]) == ["book_table"]
    dashboard = await DataAggregator(context).aggregate(context.user)
    assert dashboard.subjects[str(restaurant_identity(2))].visit_count == 2


@pytest.mark.asyncio
async def test_dish_initialization_race_loses_nothing(context, ledger):
    """The whole booking is rolled back and a retry records the visit"""
    destination = Pubkey.from_string(context.settings.default_payment_destination)
    racing = BookingService(context, composer=ConcurrentDishComposer(context, ledger))

    with pytest.raises(ClassifiedError) as exc_info:
        await racing.book_restaurant(1, ["Pasta"], payment_lamports=PAYMENT)

    assert exc_info.value.kind == ErrorKind.INITIALIZATION_RACE
    assert "try again" in exc_info.value.user_message
    assert ledger.balance(destination) == 0
    dashboard = await DataAggregator(context).aggregate(context.user)
    assert str(restaurant_identity(1)) not in dashboard.subjects

    result = await BookingService(context).book_restaurant(1, ["Pasta"], payment_lamports=PAYMENT)

    assert result.confirmed
    assert ledger.instruction_names(ledger.sent[-1]) == ["transfer", "book_table"]
    assert ledger.balance(destination) == PAYMENT
    dashboard = await DataAggregator(context).aggregate(context.user)
    assert dashboard.subjects[str(restaurant_identity(1))].visit_count == 1
    assert dashboard.dishes_by_name["Pasta"].count == 1


@pytest.mark.asyncio
async def test_insufficient_funds_checked_before_sending(context, ledger):
    ledger.fund(context.user, 1_000)

    with pytest.raises(ClassifiedError) as exc_info:
        await BookingService(context).book_restaurant(1, ["Pasta"], payment_lamports=PAYMENT)

    assert exc_info.value.kind == ErrorKind.INSUFFICIENT_FUNDS
    assert exc_info.value.details == {"balance": 1_000, "required": PAYMENT}
    assert ledger.sent == []


@pytest.mark.asyncio
async def test_invalid_destination(context, ledger):
    with pytest.raises(ClassifiedError) as exc_info:
        await BookingService(context).book_restaurant(1, ["Pasta"], payment_lamports=PAYMENT, destination="not-a-key")

    assert exc_info.value.kind == ErrorKind.INVALID_DESTINATION
    assert ledger.sent == []


@pytest.mark.asyncio
async def test_requires_signer(readonly_context, ledger):
    with pytest.raises(ClassifiedError) as exc_info:
        await BookingService(readonly_context).book_restaurant(1, ["Pasta"])

    assert exc_info.value.kind == ErrorKind.SIGNER_UNAVAILABLE


@pytest.mark.asyncio
async def test_intent_for_another_user_refused(context):
    service = BookingService(context)
    intent = service.build_intent(1, ["Pasta"]).model_copy(update={"user": Keypair().pubkey()})

    with pytest.raises(ClassifiedError) as exc_info:
        await service.book(intent)

    assert exc_info.value.kind == ErrorKind.SIGNER_UNAVAILABLE


def test_parse_destination():
    key = Keypair().pubkey()
    assert parse_destination(str(key)) == key
    assert parse_destination(None) is None


class TestDishIdentityRegistry:
    """Tests for dish name -> identity"""

    def test_derived_mode_is_stable_across_registries(self):
        assert DishIdentityRegistry(0, "derived").identity_for("Pasta") == dish_identity(0, "Pasta")
        assert DishIdentityRegistry(0, "derived").identity_for("Pasta") == DishIdentityRegistry(0).identity_for("Pasta")

    def test_session_mode_is_per_registry(self):
        registry = DishIdentityRegistry(0, "session")
        assert registry.identity_for("Pasta") == registry.identity_for("Pasta")
        assert registry.identity_for("Pasta") != DishIdentityRegistry(0, "session").identity_for("Pasta")

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            DishIdentityRegistry(0, "random")
