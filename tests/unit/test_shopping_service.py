"""Tests for shopping list generation and the list lifecycle."""

from datetime import UTC, datetime, timedelta

import pytest

from larder.core.errors import ConflictError, NotFoundError
from larder.domain.create_models import ShoppingItemCreate
from larder.domain.shopping import ShoppingReason
from larder.domain.update_models import ShoppingItemUpdate
from larder.services import inventory_service, shopping_service


SHOP_DATE = datetime(2026, 11, 2, 10, tzinfo=UTC)
PLAN_UNTIL = datetime(2026, 11, 2, 20, tzinfo=UTC)
DINNER = datetime(2026, 11, 2, 18, tzinfo=UTC)


@pytest.fixture
async def milk(seed) -> dict:
    """Milk counted in ml, sold in 1000 ml packs, 200 ml at home, 1500 ml planned."""
    article = await seed.article("Milk", default_unit="ml", package_size=1000, package_unit="ml")
    await seed.batch(article["id"], 200)
    pancakes = await seed.recipe(
        "Pancakes", servings=2, ingredients=[{"article_id": article["id"], "quantity": 1500, "unit": "ml"}]
    )
    await seed.meal(pancakes["id"], DINNER, servings=2)
    return article


async def generate():
    return await shopping_service.generate_shopping_list(shop_date=SHOP_DATE, plan_until=PLAN_UNTIL)


@pytest.mark.unit
class TestGenerateShoppingList:
    async def test_recipe_need_net_of_stock(self, milk) -> None:
        """Test 1500 ml planned with 200 ml in stock asks for 1300 ml in two packs."""
        shopping_list = await generate()

        assert shopping_list.name == "Shopping 2026-11-02"
        assert len(shopping_list.items) == 1
        item = shopping_list.items[0]
        assert item.article_id == milk["id"]
        assert item.needed_quantity == 1300
        assert item.unit == "ml"
        assert item.recommended_packs == 2
        assert item.reason == ShoppingReason.RECIPE
        assert item.custom_name == "Milk"
        assert item.estimated_price is None

    async def test_new_list_totals(self, seed, milk) -> None:
        """Test a fresh list reports nothing purchased and no total."""
        await seed.batch(milk["id"], 0, initial_quantity=1000, purchase_price=1.2)

        shopping_list = await generate()

        assert shopping_list.total_items == 1
        assert shopping_list.purchased_items == 0
        assert shopping_list.estimated_total == 0
        assert shopping_list.completed_at is None

    async def test_price_from_history(self, seed, milk) -> None:
        """Test the estimate is the average pack price times the pack count."""
        for days_ago, price in ((3, 1.0), (2, 1.2), (1, 1.4)):
            await seed.batch(
                milk["id"],
                0,
                initial_quantity=1000,
                purchase_price=price,
                purchase_date=datetime.now(UTC) - timedelta(days=days_ago),
            )

        shopping_list = await generate()

        assert shopping_list.items[0].estimated_price == 2.4

    async def test_package_in_other_unit(self, seed) -> None:
        """Test the package size is converted into the unit of the need."""
        juice = await seed.article("Juice", default_unit="ml", package_size=1.5, package_unit="l")
        brunch = await seed.recipe("Brunch", ingredients=[{"article_id": juice["id"], "quantity": 4, "unit": "l"}])
        await seed.meal(brunch["id"], DINNER)

        shopping_list = await generate()

        item = shopping_list.items[0]
        assert item.needed_quantity == 4000
        assert item.recommended_packs == 3

    async def test_unconvertible_package_recommends_one(self, seed) -> None:
        """Test a need the package unit cannot express falls back to one pack."""
        eggs = await seed.article("Eggs", default_unit="pcs", package_size=6, package_unit="pcs")
        cake = await seed.recipe("Cake", ingredients=[{"article_id": eggs["id"], "quantity": 200, "unit": "g"}])
        await seed.meal(cake["id"], DINNER)

        shopping_list = await generate()

        item = shopping_list.items[0]
        assert item.unit == "g"
        assert item.needed_quantity == 200
        assert item.recommended_packs == 1

    async def test_category_item(self, seed) -> None:
        """Test category demand becomes a named item without article."""
        soup = await seed.recipe("Soup", ingredients=[{"category_match": "Vegetables", "quantity": 3, "unit": "pcs"}])
        await seed.meal(soup["id"], DINNER)

        shopping_list = await generate()

        item = shopping_list.items[0]
        assert item.article_id is None
        assert item.custom_name == "Vegetables"
        assert item.recommended_packs == 1
        assert item.estimated_price is None

    async def test_unresolved_item_is_named(self, seed) -> None:
        """Test an ingredient without article or category still gets a readable item."""
        salad = await seed.recipe("Salad", ingredients=[{"quantity": 1, "unit": "pcs", "notes": "Fresh basil"}])
        await seed.meal(salad["id"], DINNER)

        shopping_list = await generate()

        item = shopping_list.items[0]
        assert item.article_id is None
        assert item.custom_name == "Fresh basil"
        assert item.reason == ShoppingReason.RECIPE

    async def test_low_stock_item(self, seed) -> None:
        """Test threshold items carry no custom name."""
        rice = await seed.article("Rice", default_unit="g", min_stock=1000, package_size=500, package_unit="g")
        await seed.batch(rice["id"], 100)

        shopping_list = await generate()

        item = shopping_list.items[0]
        assert item.reason == ShoppingReason.LOW_STOCK
        assert item.custom_name is None
        assert item.article_name == "Rice"
        assert item.needed_quantity == 900
        assert item.recommended_packs == 2

    async def test_covered_needs_are_skipped(self, seed, milk) -> None:
        """Test nothing is listed once stock covers the plan."""
        await seed.batch(milk["id"], 1300)

        shopping_list = await generate()

        assert shopping_list.items == []

    async def test_no_item_without_positive_need(self, seed, milk) -> None:
        """Test lines whose stock already exceeds the need never become items."""
        rice = await seed.article("Rice", default_unit="g", min_stock=500)
        await seed.batch(rice["id"], 2000)
        salt = await seed.article("Salt", min_stock=1)
        await seed.batch(salt["id"], 1)

        shopping_list = await generate()

        assert [item.article_id for item in shopping_list.items] == [milk["id"]]
        assert all(item.needed_quantity > 0 for item in shopping_list.items)

    async def test_every_call_creates_a_list(self, milk) -> None:
        """Test generation never deduplicates against earlier lists."""
        first = await generate()
        second = await shopping_service.generate_shopping_list(
            shop_date=SHOP_DATE, plan_until=PLAN_UNTIL, name="Weekend"
        )

        assert first.id != second.id
        assert second.name == "Weekend"
        lists = await shopping_service.list_shopping_lists()
        assert [sl.id for sl in lists] == [second.id, first.id]


@pytest.mark.unit
class TestListLifecycle:
    async def test_active_list_is_newest_open(self, milk) -> None:
        """Test the active list is the newest one not completed."""
        first = await generate()
        second = await generate()
        await shopping_service.complete_shopping_list(list_id=second.id)

        active = await shopping_service.get_active_shopping_list()

        assert active.id == first.id

    async def test_no_active_list(self, test_db) -> None:
        """Test NotFoundError when every list is closed."""
        with pytest.raises(NotFoundError):
            await shopping_service.get_active_shopping_list()

    async def test_complete_creates_batches(self, milk) -> None:
        """Test purchased items become batches with actual quantity, price and expiry."""
        shopping_list = await generate()
        item = shopping_list.items[0]
        expiry = datetime(2026, 11, 12, tzinfo=UTC)
        await shopping_service.update_item(
            list_id=shopping_list.id,
            item_id=item.id,
            data=ShoppingItemUpdate(is_purchased=True, purchased_quantity=2000, actual_price=2.5, expiry_date=expiry),
        )

        completed = await shopping_service.complete_shopping_list(list_id=shopping_list.id)

        assert completed.completed_at is not None
        assert completed.purchased_items == 1
        assert await inventory_service.get_current_stock(article_id=milk["id"]) == 2200
        batches = await inventory_service.list_fifo_batches(article_id=milk["id"])
        bought = next(b for b in batches if b.initial_quantity == 2000)
        assert bought.purchase_price == 2.5
        assert bought.expiry_date == expiry

    async def test_complete_falls_back_to_needed_quantity(self, milk) -> None:
        """Test an item bought without a quantity adds its needed quantity."""
        shopping_list = await generate()
        item = shopping_list.items[0]
        await shopping_service.update_item(
            list_id=shopping_list.id, item_id=item.id, data=ShoppingItemUpdate(is_purchased=True)
        )

        await shopping_service.complete_shopping_list(list_id=shopping_list.id)

        assert await inventory_service.get_current_stock(article_id=milk["id"]) == 1500

    async def test_unpurchased_items_ignored(self, milk) -> None:
        """Test completing a list without purchases leaves stock alone."""
        shopping_list = await generate()

        await shopping_service.complete_shopping_list(list_id=shopping_list.id)

        assert await inventory_service.get_current_stock(article_id=milk["id"]) == 200

    async def test_complete_twice_conflicts(self, milk) -> None:
        """Test a completed list cannot be completed again."""
        shopping_list = await generate()
        await shopping_service.complete_shopping_list(list_id=shopping_list.id)

        with pytest.raises(ConflictError, match="already completed"):
            await shopping_service.complete_shopping_list(list_id=shopping_list.id)

    async def test_update_rescales_estimate(self, seed, milk) -> None:
        """Test a new needed quantity scales the price estimate proportionally."""
        await seed.batch(milk["id"], 0, initial_quantity=1000, purchase_price=1.2)
        shopping_list = await generate()
        item = shopping_list.items[0]

        updated = await shopping_service.update_item(
            list_id=shopping_list.id, item_id=item.id, data=ShoppingItemUpdate(needed_quantity=2600)
        )

        assert updated.needed_quantity == 2600
        assert updated.estimated_price == 4.8

    async def test_manual_items(self, milk) -> None:
        """Test manual items can be added and removed."""
        shopping_list = await generate()

        item = await shopping_service.add_item(
            list_id=shopping_list.id,
            data=ShoppingItemCreate(custom_name="Birthday candles", needed_quantity=12),
        )
        assert item.reason == ShoppingReason.MANUAL
        assert (await shopping_service.get_shopping_list(list_id=shopping_list.id)).total_items == 2

        await shopping_service.delete_item(list_id=shopping_list.id, item_id=item.id)
        assert (await shopping_service.get_shopping_list(list_id=shopping_list.id)).total_items == 1

    async def test_item_must_belong_to_list(self, milk) -> None:
        """Test items are only reachable through their own list."""
        first = await generate()
        second = await generate()

        with pytest.raises(NotFoundError):
            await shopping_service.delete_item(list_id=second.id, item_id=first.items[0].id)

    def test_manual_item_needs_a_target(self) -> None:
        """Test an item without article and name is rejected."""
        with pytest.raises(ValueError, match="article_id or custom_name"):
            ShoppingItemCreate(needed_quantity=1)

    async def test_delete_list(self, milk) -> None:
        """Test deleting a list removes it and its items."""
        shopping_list = await generate()

        await shopping_service.delete_shopping_list(list_id=shopping_list.id)

        with pytest.raises(NotFoundError):
            await shopping_service.get_shopping_list(list_id=shopping_list.id)
