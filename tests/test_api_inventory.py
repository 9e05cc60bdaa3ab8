from datetime import datetime, timedelta, timezone

import pytest


@pytest.fixture
async def stocked(ledger, warehouse, actor_id):
    """Three cells holding 5, 3 and 10 units of one product."""
    product = await warehouse.product()
    cells = []
    for q in (5, 3, 10):
        cell = await warehouse.cell(capacity=20)
        await ledger.receive(cell, product, q, actor_id)
        cells.append(cell)
    return product, cells


class TestInventoryRecords:
    async def test_receive_then_read(self, client, warehouse):
        cell = await warehouse.cell(capacity=20)
        product = await warehouse.product()

        resp = await client.post("/inventory", json={"cell_id": cell, "product_id": product, "quantity": 6})
        assert resp.status_code == 201
        body = resp.json()
        assert (body["quantity"], body["current_fill"], body["capacity"]) == (6, 6, 20)
        assert body["sku"] == "SKU-1"

        listed = (await client.get("/inventory", params={"product_id": product})).json()
        assert [(r["cell_id"], r["quantity"]) for r in listed] == [(cell, 6)]

    @pytest.mark.parametrize("quantity", [0, -2])
    async def test_receive_rejects_non_positive(self, client, warehouse, quantity):
        cell = await warehouse.cell()
        product = await warehouse.product()
        resp = await client.post("/inventory", json={"cell_id": cell, "product_id": product, "quantity": quantity})
        assert resp.status_code == 422

    async def test_receive_unknown_product(self, client, warehouse):
        cell = await warehouse.cell()
        resp = await client.post("/inventory", json={"cell_id": cell, "product_id": 404, "quantity": 1})
        assert resp.status_code == 404
        assert resp.json()["error"] == "NotFound"

    async def test_adjust_and_remove(self, client, stocked, warehouse):
        product, (c1, _c2, _c3) = stocked

        resp = await client.put(f"/inventory/{c1}/{product}", json={"quantity": 2})
        assert resp.json()["quantity"] == 2

        resp = await client.put(f"/inventory/{c1}/{product}", json={"quantity": 0})
        assert resp.status_code == 200
        assert (await client.get(f"/inventory/{c1}/{product}")).status_code == 404
        assert await warehouse.fill_of(c1) == 0

    async def test_delete_record(self, client, stocked):
        product, (_c1, c2, _c3) = stocked
        resp = await client.delete(f"/inventory/{c2}/{product}")
        assert resp.json()["quantity"] == 3
        assert (await client.delete(f"/inventory/{c2}/{product}")).status_code == 404


class TestTake:
    async def test_take_from_cell(self, client, stocked, warehouse):
        product, (_c1, _c2, c3) = stocked
        resp = await client.post("/take", json={"cell_id": c3, "product_id": product, "quantity": 4})
        assert resp.status_code == 200
        assert resp.json()["cells_processed"] == [{"cell_id": c3, "quantity_taken": 4}]
        assert await warehouse.quantity(c3, product) == 6

    async def test_take_simple_is_pooled(self, client, stocked):
        product, (c1, c2, _c3) = stocked
        resp = await client.post("/take/simple", json={"product_id": product, "quantity": 7})
        assert resp.json()["cells_processed"] == [
            {"cell_id": c1, "quantity_taken": 5},
            {"cell_id": c2, "quantity_taken": 2},
        ]

    async def test_take_more_than_available(self, client, stocked, warehouse):
        product, _cells = stocked
        before = await warehouse.records()

        resp = await client.post("/take/simple", json={"product_id": product, "quantity": 19})

        assert resp.status_code == 409
        body = resp.json()
        assert body["error"] == "InsufficientStock"
        assert (body["requested"], body["available"]) == (19, 18)
        assert await warehouse.records() == before


class TestMove:
    @pytest.mark.parametrize("path", ["/move", "/move/simple"])
    async def test_move(self, client, stocked, warehouse, path):
        product, (c1, c2, _c3) = stocked
        resp = await client.post(
            path, json={"product_id": product, "from_cell_id": c1, "to_cell_id": c2, "quantity": 5}
        )
        assert resp.status_code == 200
        assert resp.json()["source_remaining"] == 0
        assert resp.json()["destination_quantity"] == 8
        assert await warehouse.quantity(c1, product) is None

    async def test_move_over_capacity(self, client, stocked, warehouse):
        product, (c1, _c2, c3) = stocked
        await client.post("/inventory", json={"cell_id": c3, "product_id": product, "quantity": 8})

        resp = await client.post(
            "/move", json={"product_id": product, "from_cell_id": c1, "to_cell_id": c3, "quantity": 5}
        )

        assert resp.status_code == 409
        body = resp.json()
        assert body["error"] == "CapacityExceeded"
        assert (body["capacity"], body["current_fill"], body["requested"]) == (20, 18, 5)
        assert await warehouse.fill_of(c3) == 18
        assert await warehouse.quantity(c1, product) == 5

    async def test_same_cell_rejected(self, client, stocked):
        product, (c1, _c2, _c3) = stocked
        resp = await client.post(
            "/move", json={"product_id": product, "from_cell_id": c1, "to_cell_id": c1, "quantity": 1}
        )
        assert resp.status_code == 422


class TestOperationHistory:
    async def test_list_and_filter(self, client, stocked):
        product, (c1, c2, _c3) = stocked
        await client.post("/move", json={"product_id": product, "from_cell_id": c1, "to_cell_id": c2, "quantity": 1})

        ops = (await client.get("/operations/")).json()
        assert ops[0]["type"] == "TRANSFER"
        assert (ops[0]["cell_id"], ops[0]["to_cell_id"]) == (c1, c2)
        assert len(ops) == 4

        receives = (await client.get("/operations/", params={"type": "RECEIVE", "limit": 2})).json()
        assert [o["type"] for o in receives] == ["RECEIVE", "RECEIVE"]

        single = (await client.get(f"/operations/{ops[0]['id']}")).json()
        assert single == ops[0]

    async def test_history_search(self, client, stocked):
        product, (_c1, c2, _c3) = stocked
        today = datetime.now(timezone.utc).date()

        resp = await client.post(
            "/operations/history",
            json={"start_date": today.isoformat(), "end_date": today.isoformat(), "cell_id": c2},
        )
        assert [o["cell_id"] for o in resp.json()] == [c2]

        tomorrow = (today + timedelta(days=1)).isoformat()
        assert (await client.post("/operations/history", json={"start_date": tomorrow})).json() == []

    async def test_reversed_range(self, client):
        resp = await client.get("/operations/", params={"start_date": "2024-02-02", "end_date": "2024-02-01"})
        assert resp.status_code == 400
        resp = await client.post("/operations/history", json={"start_date": "2024-02-02", "end_date": "2024-02-01"})
        assert resp.status_code == 422

    async def test_unknown_operation(self, client):
        assert (await client.get("/operations/123")).status_code == 404
