"""
Tests for InstructionComposer
"""
import pytest
from solders.keypair import Keypair

from dineledger.core.addressing import (dish_identity, dish_stats_address,
                                        restaurant_identity,
                                        user_stats_address)
from dineledger.core.error_types import ClassifiedError, ErrorKind
from dineledger.models import (BookingIntent, DishSelection, DishStats,
                               UserStats)
from dineledger.services.instruction_composer import InstructionComposer

DESTINATION = Keypair().pubkey()


def make_intent(user, dishes=("Pasta", "Salad"), payment=0, destination=DESTINATION) -> BookingIntent:
    return BookingIntent(
        user=user,
        restaurant=restaurant_identity(1),
        dishes=[DishSelection(dish_id=dish_identity(0, name), name=name) for name in dishes],
        payment_lamports=payment,
        payment_destination=destination,
    )


def kinds(operations):
    return [op.kind for op in operations]


@pytest.mark.asyncio
async def test_new_dishes_are_initialized(context):
    """Every dish without a record gets an initialization before the booking"""
    operations = await InstructionComposer(context).compose(make_intent(context.user))

    assert kinds(operations) == ["initialize_dish_stats", "initialize_dish_stats", "book_table"]
    assert operations[0].dish_name == "Pasta"
    assert operations[-1].dish_ids == [dish_identity(0, "Pasta"), dish_identity(0, "Salad")]


@pytest.mark.asyncio
async def test_transfer_first_book_last(context):
    operations = await InstructionComposer(context).compose(make_intent(context.user, payment=250_000))

    assert kinds(operations)[0] == "transfer"
    assert kinds(operations)[-1] == "book_table"
    assert operations[0].lamports == 250_000
    assert operations[0].payee == DESTINATION


@pytest.mark.asyncio
async def test_no_transfer_without_payment(context):
    operations = await InstructionComposer(context).compose(make_intent(context.user, dishes=()))

    assert kinds(operations) == ["book_table"]
    assert operations[0].dish_accounts == []


@pytest.mark.asyncio
async def test_existing_dish_records_are_not_reinitialized(context, ledger):
    user = context.user
    pasta = dish_identity(0, "Pasta")
    address = dish_stats_address(user, pasta, context.program_id)
    ledger.put_record(address, DishStats(user=user, dish=pasta, count=2, name="Pasta").to_account_data())

    operations = await InstructionComposer(context).compose(make_intent(user))

    assert kinds(operations) == ["initialize_dish_stats", "book_table"]
    assert operations[0].dish_name == "Salad"
    # Existing records are still updated by the booking
    assert operations[-1].dish_accounts[0] == (address, pasta)


@pytest.mark.asyncio
async def test_compose_is_idempotent_without_submission(context):
    """Composing twice against unchanged state yields the same operations"""
    composer = InstructionComposer(context)
    intent = make_intent(context.user, payment=1000)

    first = await composer.compose(intent)
    second = await composer.compose(intent)

    assert first == second


@pytest.mark.asyncio
async def test_payment_requires_destination(context):
    with pytest.raises(ClassifiedError) as exc_info:
        await InstructionComposer(context).compose(make_intent(context.user, payment=1000, destination=None))

    assert exc_info.value.kind == ErrorKind.INVALID_DESTINATION


@pytest.mark.asyncio
async def test_subject_record_initialized_when_requested(context):
    operations = await InstructionComposer(context, ensure_subject_record=True).compose(
        make_intent(context.user, dishes=("Soup",))
    )

    assert kinds(operations) == ["initialize_dish_stats", "initialize_user_stats", "book_table"]
    assert operations[1].address == user_stats_address(context.user, restaurant_identity(1), context.program_id)


@pytest.mark.asyncio
async def test_existing_subject_record_not_initialized(context, ledger):
    user = context.user
    restaurant = restaurant_identity(1)
    ledger.put_record(
        user_stats_address(user, restaurant, context.program_id),
        UserStats(user=user, restaurant=restaurant, visit_count=1).to_account_data(),
    )

    operations = await InstructionComposer(context, ensure_subject_record=True).compose(
        make_intent(user, dishes=())
    )

    assert kinds(operations) == ["book_table"]


@pytest.mark.asyncio
async def test_probe_failure_is_remote_unavailable(context, ledger):
    ledger.failing_methods.add("getAccountInfo")

    with pytest.raises(ClassifiedError) as exc_info:
        await InstructionComposer(context).compose(make_intent(context.user))

    assert exc_info.value.kind == ErrorKind.REMOTE_UNAVAILABLE
