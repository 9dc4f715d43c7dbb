from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from larder.errors import ValidationError
from larder.infra.transactions import run_in_transaction
from larder.models import Notification
from larder.services import meal_plan_aggregator, shopping_reconciler, stock_ledger
from larder.services.shopping_reconciler import SOURCE_MANUAL, SOURCE_RECONCILER

START = date(2024, 3, 4)
END = date(2024, 3, 10)


@pytest.fixture
def bread_week(db_session, user, flour, make_recipe):
    """200 g flour at 4 servings, planned for 8; 100 g flour in stock."""
    bread = make_recipe(user, "bread", 4, [(flour, 200, "g")])
    run_in_transaction(
        db_session, lambda: meal_plan_aggregator.create_meal_plan(db_session, user, bread.id, START, 8)
    )
    run_in_transaction(db_session, lambda: stock_ledger.add_stock(db_session, user, flour.id, 100, "g"))
    return bread


def _reconcile(db, user):
    def operation():
        required = meal_plan_aggregator.aggregate(db, user, START, END)
        return shopping_reconciler.reconcile(db, user, required)
    return run_in_transaction(db, operation)


def _generated(db, user):
    return [i for i in shopping_reconciler.list_items(db, user.id) if i.source == SOURCE_RECONCILER]


def test_reconcile_creates_deficit_item(db_session, user, flour, bread_week):
    totals = meal_plan_aggregator.aggregate(db_session, user, START, END)
    assert totals[flour.id].quantity == Decimal("400")

    result = _reconcile(db_session, user)
    assert len(result.created) == 1
    item = result.created[0]
    assert item.base_ingredient_id == flour.id
    assert item.quantity == Decimal("300.00")
    assert item.source == SOURCE_RECONCILER
    assert item.purchased is False


def test_reconcile_is_idempotent(db_session, user, flour, bread_week):
    _reconcile(db_session, user)
    before = [(i.id, i.quantity) for i in _generated(db_session, user)]

    result = _reconcile(db_session, user)
    assert not result.changed
    assert len(result.unchanged) == 1
    assert [(i.id, i.quantity) for i in _generated(db_session, user)] == before


def test_reconcile_notifies_only_on_change(db_session, user, flour, bread_week):
    _reconcile(db_session, user)
    _reconcile(db_session, user)
    kinds = db_session.scalars(select(Notification.kind).where(Notification.user_id == user.id)).all()
    assert kinds == ["shopping_list_updated"]


def test_reconcile_updates_when_stock_changes(db_session, user, flour, bread_week):
    _reconcile(db_session, user)
    run_in_transaction(db_session, lambda: stock_ledger.add_stock(db_session, user, flour.id, 250, "g"))

    result = _reconcile(db_session, user)
    assert [i.quantity for i in result.updated] == [Decimal("50.00")]
    assert len(_generated(db_session, user)) == 1


def test_reconcile_removes_item_when_deficit_covered(db_session, user, flour, bread_week):
    _reconcile(db_session, user)
    run_in_transaction(db_session, lambda: stock_ledger.add_stock(db_session, user, flour.id, 300, "g"))

    result = _reconcile(db_session, user)
    assert result.removed == [flour.id]
    assert _generated(db_session, user) == []


def test_reconcile_removes_items_no_longer_required(db_session, user, flour, bread_week):
    _reconcile(db_session, user)
    result = run_in_transaction(db_session, lambda: shopping_reconciler.reconcile(db_session, user, {}))
    assert result.removed == [flour.id]


def test_reconcile_leaves_manual_items_alone(db_session, user, flour, bread_week):
    manual = run_in_transaction(
        db_session, lambda: shopping_reconciler.add_manual_item(db_session, user, flour.id, 1, "kg")
    )
    _reconcile(db_session, user)
    run_in_transaction(db_session, lambda: shopping_reconciler.reconcile(db_session, user, {}))

    items = shopping_reconciler.list_items(db_session, user.id)
    assert [(i.id, i.source, i.quantity) for i in items] == [(manual.id, SOURCE_MANUAL, Decimal("1000.00"))]


def test_reconcile_ignores_purchased_items(db_session, user, flour, bread_week):
    first = _reconcile(db_session, user).created[0]
    run_in_transaction(db_session, lambda: shopping_reconciler.mark_purchased(db_session, user, first.id))

    # Purchasing does not credit stock, so the deficit is still open
    result = _reconcile(db_session, user)
    assert len(result.created) == 1
    assert result.created[0].id != first.id

    items = shopping_reconciler.list_items(db_session, user.id)
    assert sorted(i.purchased for i in items) == [False, True]


def test_reconcile_rejects_negative_requirements(db_session, user, flour):
    with pytest.raises(ValidationError):
        shopping_reconciler.reconcile(db_session, user, {flour.id: Decimal("-1")})


def test_manual_item_requires_positive_quantity(db_session, user, flour):
    with pytest.raises(ValidationError):
        shopping_reconciler.add_manual_item(db_session, user, flour.id, 0, "g")


def test_generated_items_cannot_be_deleted_by_hand(db_session, user, flour, bread_week):
    item = _reconcile(db_session, user).created[0]
    with pytest.raises(ValidationError):
        shopping_reconciler.delete_manual_item(db_session, user, item.id)


# --- API ---

def test_reconcile_endpoint(client, headers, flour, bread_week):
    payload = {"start": START.isoformat(), "end": END.isoformat()}

    response = client.post("/api/shopping-list/reconcile", headers=headers, json=payload)
    assert response.status_code == 200
    data = response.json()
    assert [(i["base_ingredient_id"], i["quantity"], i["unit"]) for i in data["created"]] == [(flour.id, 300.0, "g")]

    response = client.post("/api/shopping-list/reconcile", headers=headers, json=payload)
    data = response.json()
    assert data["created"] == [] and data["updated"] == [] and data["removed_ingredient_ids"] == []
    assert len(data["unchanged"]) == 1


def test_manual_item_endpoints(client, headers, flour):
    response = client.post(
        "/api/shopping-list/", headers=headers,
        json={"ingredient_id": flour.id, "quantity": 2, "unit": "lb"},
    )
    assert response.status_code == 201
    item = response.json()
    assert item["source"] == "manual"
    assert abs(item["quantity"] - 907.18) < 0.01

    response = client.post(f"/api/shopping-list/{item['id']}/purchase", headers=headers)
    assert response.status_code == 200
    assert response.json()["purchased"] is True

    # Purchase alone leaves stock untouched
    assert client.get(f"/api/stock/{flour.id}", headers=headers).status_code == 404

    response = client.delete(f"/api/shopping-list/{item['id']}", headers=headers)
    assert response.status_code == 204
    assert client.get("/api/shopping-list/", headers=headers).json() == []
