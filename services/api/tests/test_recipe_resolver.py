from decimal import Decimal

import pytest

from larder.errors import ValidationError, NotFoundError, UnitMismatchError
from larder.services.recipe_resolver import resolve, load_recipe


def test_resolve_at_default_servings(user, flour, milk, make_recipe):
    recipe = make_recipe(user, "pancakes", 4, [(flour, 200, "g"), (milk, 0.5, "l")])
    reqs = resolve(recipe, 4)

    assert [(r.ingredient_id, r.quantity, r.unit) for r in reqs] == [
        (flour.id, Decimal("200"), "g"),
        (milk.id, Decimal("500"), "ml"),
    ]


def test_resolve_scales_linearly(user, flour, make_recipe):
    recipe = make_recipe(user, "bread", 4, [(flour, 200, "g")])

    assert resolve(recipe, 8)[0].quantity == Decimal("400")
    assert resolve(recipe, 2)[0].quantity == Decimal("100")
    assert resolve(recipe, 1)[0].quantity == Decimal("50")


def test_resolve_keeps_line_order(user, flour, sugar, milk, make_recipe):
    recipe = make_recipe(user, "cake", 2, [(sugar, 100, "g"), (milk, 1, "cup"), (flour, 150, "g")])
    assert [r.ingredient_name for r in resolve(recipe, 2)] == ["sugar", "milk", "flour"]


@pytest.mark.parametrize("servings", [0, -2, None])
def test_resolve_rejects_bad_servings(user, flour, make_recipe, servings):
    recipe = make_recipe(user, "bread", 4, [(flour, 200, "g")])
    with pytest.raises(ValidationError):
        resolve(recipe, servings)


def test_resolve_unit_mismatch_names_recipe_and_ingredient(user, flour, make_recipe):
    recipe = make_recipe(user, "odd bread", 4, [(flour, 2, "cloves")])
    with pytest.raises(UnitMismatchError) as exc:
        resolve(recipe, 4)
    assert exc.value.recipe_id == recipe.id
    assert exc.value.ingredient_id == flour.id
    assert exc.value.context["unit"] == "cloves"


def test_load_recipe_hides_other_users_recipes(db_session, user, other_user, flour, make_recipe):
    private = make_recipe(other_user, "family secret", 2, [(flour, 100, "g")])
    with pytest.raises(NotFoundError):
        load_recipe(db_session, user, private.id)
    assert load_recipe(db_session, other_user, private.id).id == private.id


def test_load_recipe_global_visible_to_everyone(db_session, user, admin, flour, make_recipe):
    shared = make_recipe(admin, "house bread", 4, [(flour, 500, "g")], is_global=True)
    assert load_recipe(db_session, user, shared.id).created_by_user is None


# --- API ---

def test_requirements_endpoint(client, headers, user, flour, make_recipe):
    recipe = make_recipe(user, "bread", 4, [(flour, 200, "g")])
    response = client.get(f"/api/recipes/{recipe.id}/requirements", params={"servings": 6}, headers=headers)
    assert response.status_code == 200
    data = response.json()
    assert data["items"] == [
        {"ingredient_id": flour.id, "ingredient_name": "flour", "quantity": 300.0, "unit": "g"}
    ]


def test_requirements_endpoint_zero_servings(client, headers, user, flour, make_recipe):
    recipe = make_recipe(user, "bread", 4, [(flour, 200, "g")])
    response = client.get(f"/api/recipes/{recipe.id}/requirements", params={"servings": 0}, headers=headers)
    assert response.status_code == 400
    assert response.json()["error"] == "validation_error"
