import pytest

from larder.errors import PermissionDeniedError, UnitMismatchError, ValidationError
from larder.infra.transactions import run_in_transaction
from larder.services import catalog, shopping_reconciler, stock_ledger
from larder.services.ownership import can_modify


def test_user_creates_private_ingredient(db_session, user):
    ingredient = catalog.create_ingredient(db_session, user, " Basil ", category="Vegetables")
    assert ingredient.name == "Basil"
    assert ingredient.category == "vegetables"
    assert ingredient.created_by_user == user.id
    assert ingredient.is_global is False


def test_only_admin_creates_global(db_session, user, admin):
    with pytest.raises(PermissionDeniedError):
        catalog.create_ingredient(db_session, user, "salt", is_global=True)

    salt = catalog.create_ingredient(db_session, admin, "salt", category="spices", is_global=True)
    assert salt.created_by_user is None
    assert salt.is_global is True


def test_names_unique_per_owner(db_session, user, other_user, admin):
    catalog.create_ingredient(db_session, user, "chili oil", category="oils")
    with pytest.raises(ValidationError):
        catalog.create_ingredient(db_session, user, "chili oil")

    # Same name for another owner is fine
    catalog.create_ingredient(db_session, other_user, "chili oil")

    catalog.create_ingredient(db_session, admin, "rice", is_global=True)
    with pytest.raises(ValidationError):
        catalog.create_ingredient(db_session, admin, "rice", is_global=True)


def test_can_modify(db_session, user, other_user, admin, make_ingredient):
    mine = make_ingredient("mine", owner=user)
    shared = make_ingredient("shared")

    assert can_modify(user, mine)
    assert not can_modify(other_user, mine)
    assert not can_modify(user, shared)
    assert can_modify(admin, shared)


def test_update_global_ingredient_requires_admin(db_session, user, admin, flour):
    with pytest.raises(PermissionDeniedError):
        catalog.update_ingredient(db_session, user, flour.id, {"category": "grains"})

    updated = catalog.update_ingredient(db_session, admin, flour.id, {"category": "Grains"})
    assert updated.category == "grains"


def test_update_recipe_replaces_lines(db_session, user, flour, sugar, make_recipe):
    recipe = make_recipe(user, "bread", 4, [(flour, 200, "g")])
    updated = catalog.update_recipe(db_session, user, recipe.id, {
        "default_servings": 2,
        "ingredients": [{"ingredient_id": sugar.id, "quantity": 10, "unit": "g"}],
    })
    assert updated.default_servings == 2
    assert [line.base_ingredient_id for line in updated.ingredients] == [sugar.id]


def test_global_recipe_rejects_private_ingredients(db_session, admin, flour, make_ingredient, make_recipe):
    saffron = make_ingredient("saffron", "spices", owner=admin)

    with pytest.raises(ValidationError) as exc:
        catalog.create_recipe(
            db_session, admin, "paella", 4,
            ingredients=[{"ingredient_id": saffron.id, "quantity": 1, "unit": "g"}],
            is_global=True,
        )
    assert exc.value.context["ingredient_id"] == saffron.id

    paella = make_recipe(admin, "paella", 4, [(flour, 100, "g")], is_global=True)
    with pytest.raises(ValidationError):
        catalog.update_recipe(db_session, admin, paella.id, {
            "ingredients": [{"ingredient_id": saffron.id, "quantity": 1, "unit": "g"}],
        })

    # Private recipes may mix both
    private = make_recipe(admin, "paella", 4, [(flour, 100, "g"), (saffron, 1, "g")])
    assert len(private.ingredients) == 2


def test_category_change_across_dimensions_blocked_by_stock(db_session, user, make_ingredient):
    custard = make_ingredient("custard", "baking", owner=user)
    run_in_transaction(db_session, lambda: stock_ledger.add_stock(db_session, user, custard.id, 500, "g"))

    with pytest.raises(UnitMismatchError) as exc:
        catalog.update_ingredient(db_session, user, custard.id, {"category": "dairy"})
    assert exc.value.context["ingredient_id"] == custard.id
    assert custard.category == "baking"

    # Same dimension keeps the stored grams meaningful
    updated = catalog.update_ingredient(db_session, user, custard.id, {"category": "Grains"})
    assert updated.category == "grains"


def test_category_change_across_dimensions_blocked_by_shopping_list(db_session, user, make_ingredient):
    cream = make_ingredient("cream", "dairy", owner=user)
    run_in_transaction(
        db_session, lambda: shopping_reconciler.add_manual_item(db_session, user, cream.id, 200, "ml")
    )

    with pytest.raises(UnitMismatchError):
        catalog.update_ingredient(db_session, user, cream.id, {"category": "eggs"})


def test_category_change_without_quantities_is_allowed(db_session, user, make_ingredient):
    tofu = make_ingredient("tofu", "vegetables", owner=user)
    updated = catalog.update_ingredient(db_session, user, tofu.id, {"category": "canned"})
    assert updated.category == "canned"


def test_recipe_requires_positive_servings(db_session, user):
    with pytest.raises(ValidationError):
        catalog.create_recipe(db_session, user, "nothing", 0)


def test_annotation_upsert(db_session, user, flour, make_recipe):
    recipe = make_recipe(user, "bread", 4, [(flour, 200, "g")])
    first = catalog.annotate_recipe(db_session, user, recipe.id, notes="too salty", rating=3)
    second = catalog.annotate_recipe(db_session, user, recipe.id, notes="perfect", rating=5)
    assert first.id == second.id
    assert second.rating == 5

    with pytest.raises(ValidationError):
        catalog.annotate_recipe(db_session, user, recipe.id, rating=6)


# --- API ---

def test_ingredient_endpoints(client, headers, flour):
    response = client.post("/api/ingredients/", headers=headers, json={"name": "za'atar", "category": "spices"})
    assert response.status_code == 201
    created = response.json()
    assert created["created_by_user"] == headers["X-User-Id"]

    names = [i["name"] for i in client.get("/api/ingredients/", headers=headers).json()]
    assert names == ["flour", "za'atar"]

    response = client.post("/api/ingredients/", headers=headers, json={"name": "pepper", "is_global": True})
    assert response.status_code == 403
    assert response.json()["error"] == "permission_denied"

    response = client.patch(f"/api/ingredients/{flour.id}", headers=headers, json={"category": "grains"})
    assert response.status_code == 403


def test_recipe_endpoints(client, headers, flour):
    response = client.post("/api/recipes", headers=headers, json={
        "name": "flatbread",
        "default_servings": 2,
        "ingredients": [{"ingredient_id": flour.id, "quantity": 250, "unit": "g"}],
    })
    assert response.status_code == 201
    recipe = response.json()
    assert [line["base_ingredient_id"] for line in recipe["ingredients"]] == [flour.id]

    response = client.put(f"/api/recipes/{recipe['id']}/annotation", headers=headers, json={"rating": 4})
    assert response.status_code == 200
    assert response.json()["rating"] == 4

    assert [r["name"] for r in client.get("/api/recipes", headers=headers).json()] == ["flatbread"]


def test_other_users_recipe_is_hidden(client, other_user, user, flour, make_recipe):
    recipe = make_recipe(user, "bread", 4, [(flour, 200, "g")])
    response = client.get(f"/api/recipes/{recipe.id}", headers={"X-User-Id": other_user.id})
    assert response.status_code == 404


def test_user_endpoints(client):
    response = client.post("/api/users", json={"email": "New@Example.com"})
    assert response.status_code == 201
    user_id = response.json()["id"]

    assert client.post("/api/users", json={"email": "new@example.com"}).status_code == 409

    me = client.get("/api/users/me", headers={"X-User-Id": user_id}).json()
    assert me["email"] == "new@example.com"
    assert me["role"] == "user"
