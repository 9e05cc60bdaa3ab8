import pytest

from core.allocation import Allocation
from core.exceptions import CapacityExceeded, InsufficientStock, InvalidQuantity, InvalidTransfer, NotFound


async def _stock(ledger, warehouse, actor_id, quantities, capacity=100):
    """One cell per quantity, created in order so cell ids ascend."""
    product = await warehouse.product()
    cells = []
    for q in quantities:
        cell = await warehouse.cell(capacity=capacity)
        if q:
            await ledger.receive(cell, product, q, actor_id)
        cells.append(cell)
    return product, cells


class TestWithdrawFromCell:
    async def test_round_trip_leaves_cell_empty(self, ledger, allocation, warehouse, actor_id):
        product, (cell,) = await _stock(ledger, warehouse, actor_id, [10])

        plan = await allocation.withdraw(product, 10, actor_id, cell_id=cell)

        assert plan == [Allocation(cell_id=cell, quantity=10)]
        assert await warehouse.records() == []
        assert await warehouse.fill_of(cell) == 0

    async def test_partial_withdrawal(self, ledger, allocation, warehouse, actor_id):
        product, (cell,) = await _stock(ledger, warehouse, actor_id, [10])

        await allocation.withdraw(product, 4, actor_id, cell_id=cell)

        assert await warehouse.quantity(cell, product) == 6
        assert await warehouse.fill_of(cell) == 6
        assert (await warehouse.operations())[-1] == ("WITHDRAW", product, cell, None, 4)

    async def test_insufficient_in_cell(self, ledger, allocation, warehouse, actor_id):
        product, (cell, other) = await _stock(ledger, warehouse, actor_id, [3, 50])

        with pytest.raises(InsufficientStock) as exc:
            await allocation.withdraw(product, 5, actor_id, cell_id=cell)

        assert (exc.value.cell_id, exc.value.available) == (cell, 3)
        assert await warehouse.quantity(cell, product) == 3
        assert await warehouse.quantity(other, product) == 50

    async def test_cell_without_the_product(self, ledger, allocation, warehouse, actor_id):
        product, _ = await _stock(ledger, warehouse, actor_id, [5])
        empty = await warehouse.cell()

        with pytest.raises(InsufficientStock) as exc:
            await allocation.withdraw(product, 1, actor_id, cell_id=empty)
        assert exc.value.available == 0

    async def test_unknown_cell(self, ledger, allocation, warehouse, actor_id):
        product, _ = await _stock(ledger, warehouse, actor_id, [5])
        with pytest.raises(NotFound):
            await allocation.withdraw(product, 1, actor_id, cell_id=999)


class TestPooledWithdraw:
    async def test_greedy_by_ascending_cell_id(self, ledger, allocation, warehouse, actor_id):
        product, (c1, c2, c3) = await _stock(ledger, warehouse, actor_id, [5, 3, 10])
        logged_before = len(await warehouse.operations())

        plan = await allocation.withdraw(product, 7, actor_id)

        assert plan == [Allocation(cell_id=c1, quantity=5), Allocation(cell_id=c2, quantity=2)]
        assert await warehouse.records() == [(c2, product, 1), (c3, product, 10)]
        assert [await warehouse.fill_of(c) for c in (c1, c2, c3)] == [0, 1, 10]

        logged = (await warehouse.operations())[logged_before:]
        assert logged == [
            ("WITHDRAW", product, c1, None, 5),
            ("WITHDRAW", product, c2, None, 2),
        ]

    async def test_shortfall_changes_nothing(self, ledger, allocation, warehouse, actor_id):
        product, (c1, c2) = await _stock(ledger, warehouse, actor_id, [5, 3])
        records_before = await warehouse.records()
        logged_before = await warehouse.operations()

        with pytest.raises(InsufficientStock) as exc:
            await allocation.withdraw(product, 10, actor_id)

        assert (exc.value.requested, exc.value.available) == (10, 8)
        assert await warehouse.records() == records_before
        assert await warehouse.operations() == logged_before
        await warehouse.assert_fill_consistent()

    async def test_other_products_untouched(self, ledger, allocation, warehouse, actor_id):
        product, (c1,) = await _stock(ledger, warehouse, actor_id, [5])
        other = await warehouse.product("SKU-2", "Gadget")
        await ledger.receive(c1, other, 4, actor_id)

        await allocation.withdraw(product, 5, actor_id)

        assert await warehouse.records() == [(c1, other, 4)]
        assert await warehouse.fill_of(c1) == 4

    async def test_zero_quantity_rejected(self, ledger, allocation, warehouse, actor_id):
        product, _ = await _stock(ledger, warehouse, actor_id, [5])
        with pytest.raises(InvalidQuantity):
            await allocation.withdraw(product, 0, actor_id)

    async def test_unknown_product(self, allocation):
        with pytest.raises(NotFound):
            await allocation.withdraw(999, 1, None)


class TestTransfer:
    async def test_moves_stock_and_logs_one_entry(self, ledger, allocation, warehouse, actor_id):
        product, (source, destination) = await _stock(ledger, warehouse, actor_id, [10, 0], capacity=20)

        result = await allocation.transfer(product, 4, source, destination, actor_id)

        assert (result.source_remaining, result.destination_quantity) == (6, 4)
        assert await warehouse.records() == [(source, product, 6), (destination, product, 4)]
        assert (await warehouse.fill_of(source), await warehouse.fill_of(destination)) == (6, 4)
        assert (await warehouse.operations())[-1] == ("TRANSFER", product, source, destination, 4)

    async def test_full_drain_deletes_source_record(self, ledger, allocation, warehouse, actor_id):
        product, (source, destination) = await _stock(ledger, warehouse, actor_id, [5, 2], capacity=20)

        result = await allocation.transfer(product, 5, source, destination, actor_id)

        assert result.source_remaining == 0
        assert result.destination_quantity == 7
        assert await warehouse.records() == [(destination, product, 7)]
        await warehouse.assert_fill_consistent()

    async def test_destination_capacity_enforced(self, ledger, allocation, warehouse, actor_id):
        product = await warehouse.product()
        filler = await warehouse.product("SKU-F", "Filler")
        source = await warehouse.cell(capacity=100)
        destination = await warehouse.cell(capacity=10)
        await ledger.receive(source, product, 20, actor_id)
        await ledger.receive(destination, filler, 8, actor_id)
        logged_before = await warehouse.operations()

        with pytest.raises(CapacityExceeded) as exc:
            await allocation.transfer(product, 5, source, destination, actor_id)

        assert (exc.value.capacity, exc.value.current_fill, exc.value.requested) == (10, 8, 5)
        assert await warehouse.quantity(source, product) == 20
        assert await warehouse.quantity(destination, product) is None
        assert (await warehouse.fill_of(source), await warehouse.fill_of(destination)) == (20, 8)
        assert await warehouse.operations() == logged_before

    async def test_capacity_is_checked_before_source_stock(self, ledger, allocation, warehouse, actor_id):
        product = await warehouse.product()
        filler = await warehouse.product("SKU-F", "Filler")
        source = await warehouse.cell(capacity=100)
        destination = await warehouse.cell(capacity=10)
        await ledger.receive(source, product, 2, actor_id)
        await ledger.receive(destination, filler, 10, actor_id)

        with pytest.raises(CapacityExceeded):
            await allocation.transfer(product, 5, source, destination, actor_id)

        assert await warehouse.records() == [(source, product, 2), (destination, filler, 10)]

    async def test_short_source_leaves_destination_fill_alone(self, ledger, allocation, warehouse, actor_id):
        product, (source, destination) = await _stock(ledger, warehouse, actor_id, [2, 0], capacity=10)

        with pytest.raises(InsufficientStock):
            await allocation.transfer(product, 5, source, destination, actor_id)

        assert await warehouse.fill_of(destination) == 0

    async def test_exactly_filling_destination_is_allowed(self, ledger, allocation, warehouse, actor_id):
        product = await warehouse.product()
        source = await warehouse.cell(capacity=100)
        destination = await warehouse.cell(capacity=10)
        await ledger.receive(source, product, 20, actor_id)
        await ledger.receive(destination, product, 8, actor_id)

        await allocation.transfer(product, 2, source, destination, actor_id)

        assert await warehouse.fill_of(destination) == 10

    async def test_insufficient_source(self, ledger, allocation, warehouse, actor_id):
        product, (source, destination) = await _stock(ledger, warehouse, actor_id, [3, 0])

        with pytest.raises(InsufficientStock) as exc:
            await allocation.transfer(product, 4, source, destination, actor_id)

        assert exc.value.available == 3
        assert await warehouse.records() == [(source, product, 3)]

    async def test_same_cell_rejected(self, ledger, allocation, warehouse, actor_id):
        product, (cell,) = await _stock(ledger, warehouse, actor_id, [3])
        with pytest.raises(InvalidTransfer):
            await allocation.transfer(product, 1, cell, cell, actor_id)

    async def test_unknown_destination(self, ledger, allocation, warehouse, actor_id):
        product, (cell,) = await _stock(ledger, warehouse, actor_id, [3])
        with pytest.raises(NotFound):
            await allocation.transfer(product, 1, cell, 999, actor_id)
        assert await warehouse.quantity(cell, product) == 3


class TestLedgerStaysConsistent:
    async def test_mixed_sequence(self, ledger, allocation, warehouse, actor_id):
        bolts = await warehouse.product("SKU-B", "Bolts")
        nuts = await warehouse.product("SKU-N", "Nuts")
        a = await warehouse.cell(capacity=30)
        b = await warehouse.cell(capacity=30)
        c = await warehouse.cell(capacity=30)
        small = await warehouse.cell(capacity=5)

        await ledger.receive(a, bolts, 12, actor_id)
        await ledger.receive(b, bolts, 6, actor_id)
        await ledger.receive(b, nuts, 9, actor_id)
        await allocation.transfer(nuts, 9, b, c, actor_id)
        await allocation.withdraw(bolts, 14, actor_id)
        await ledger.adjust_quantity(c, nuts, 11, actor_id)
        await allocation.transfer(bolts, 4, b, c, actor_id)
        with pytest.raises(CapacityExceeded):
            await allocation.transfer(nuts, 11, c, small, actor_id)

        assert await warehouse.records() == [(c, bolts, 4), (c, nuts, 11)]
        assert await warehouse.fills() == [(a, 0), (b, 0), (c, 15), (small, 0)]
        await warehouse.assert_fill_consistent()
