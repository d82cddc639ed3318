from decimal import Decimal

import pytest

from catalog.models import Category, Item, ItemSize, Modifier, ModifierGroup
from importers import CatalogImporter, parse_upload
from importers.errors import ImportValidationError
from tests.factories import (
    BusinessFactory,
    CategoryFactory,
    ItemFactory,
    ItemSizeFactory,
    ModifierFactory,
    ModifierGroupFactory,
)

FULL_MENU_CSV = (
    "type,name,parent\n"
    "CATEGORY,Mains,\n"
    "SIZE,L,\n"
    "MOD_GROUP,Toppings,\n"
    "MODIFIER,Cheese,Toppings\n"
    "ITEM,Burger,Mains\n"
)


def _import(business, content, filename="import.csv", **kwargs):
    importer = CatalogImporter(business, log_to_console=False, **kwargs)
    ops = importer.save_all(parse_upload(content.encode("utf-8"), filename).data)
    return importer, ops


@pytest.mark.django_db
def test_mains_and_burger_are_created(business):
    content = "type,name,parent\nCATEGORY,Mains,\nITEM,Burger,Mains\n"

    _, ops = _import(business, content)

    assert Category.objects.filter(business=business).count() == 1
    burger = Item.objects.get(business=business)
    assert burger.name == "Burger"
    assert burger.category_name == "Mains"
    assert burger.base_price == Decimal("0.00")
    assert burger.is_sizeable is False
    assert [(op.entity_type, op.action) for op in ops] == [("category", "create"), ("item", "create")]
    assert all(op.previous_data is None for op in ops)


@pytest.mark.django_db
def test_reimport_is_idempotent(business):
    _, first_ops = _import(business, FULL_MENU_CSV)
    _, second_ops = _import(business, FULL_MENU_CSV)

    assert [op.entity_type for op in first_ops] == [
        "category",
        "item_size",
        "modifier_group",
        "modifier",
        "item",
    ]
    assert {op.action for op in first_ops} == {"create"}
    assert {op.action for op in second_ops} == {"update"}
    assert [op.id for op in second_ops] == [op.id for op in first_ops]
    for model in (Category, ItemSize, ModifierGroup, Item):
        assert model.objects.filter(business=business).count() == 1
    assert Modifier.objects.filter(modifier_group__business=business).count() == 1


@pytest.mark.django_db
def test_category_names_match_case_insensitively(business):
    drinks = CategoryFactory(business=business, name="Drinks", description="Old")

    _, ops = _import(business, "name,description\ndrinks,Cold things\n", "categories.csv")

    assert len(ops) == 1
    assert (ops[0].action, ops[0].id) == ("update", drinks.pk)
    assert ops[0].previous_data["description"] == "Old"
    drinks.refresh_from_db()
    assert drinks.name == "Drinks"
    assert drinks.description == "Cold things"
    assert Category.objects.filter(business=business).count() == 1


@pytest.mark.django_db
def test_categories_are_scoped_to_the_business(business):
    other = BusinessFactory(name="Other Cafe")
    CategoryFactory(business=other, name="Mains")

    _, ops = _import(business, "name\nMains\n", "categories.csv")

    assert ops[0].action == "create"
    assert Category.objects.filter(name="Mains").count() == 2


@pytest.mark.django_db
def test_unknown_group_aborts_the_whole_import(business):
    content = "type,name,parent\nCATEGORY,Mains,\nMODIFIER,Cheese,Toppings\n"
    importer = CatalogImporter(business, log_to_console=False)
    data = parse_upload(content.encode(), "import.csv").data

    with pytest.raises(ImportValidationError):
        importer.save_all(data)

    assert Category.objects.filter(business=business).count() == 0
    assert Modifier.objects.count() == 0
    assert importer.rollback_ops == []
    assert importer.counters["errors"] == 1
    assert "Import aborted" in importer.get_output()


@pytest.mark.django_db
def test_modifier_row_without_group_raises_validation_error(business):
    content = "group_key,modifier_key,name,max_quantity\nToppings,Cheese,Cheese,3\n"

    with pytest.raises(ImportValidationError) as excinfo:
        _import(business, content)

    assert str(excinfo.value) == "Modifier group not found. Import groups first."
    assert ModifierGroup.objects.count() == 0


@pytest.mark.django_db
def test_item_without_category_raises_validation_error(business):
    with pytest.raises(ImportValidationError) as excinfo:
        _import(business, "name,category_name\nBurger,Nowhere\n", "items.csv")

    assert str(excinfo.value) == "Category not found for this item. Import categories first."
    assert Item.objects.count() == 0


@pytest.mark.django_db
def test_item_category_id_must_belong_to_business(business):
    own = CategoryFactory(business=business, name="Soups")
    foreign = CategoryFactory(name="Foreign")

    _import(business, f"name,category_id\nTomato,{own.pk}\n", "items.csv")
    assert Item.objects.get(name="Tomato").category == own

    with pytest.raises(ImportValidationError):
        _import(business, f"name,category_id\nLeek,{foreign.pk}\n", "items.csv")


@pytest.mark.django_db
def test_item_update_never_touches_pricing(business):
    mains = CategoryFactory(business=business, name="Mains")
    burger = ItemFactory(
        business=business,
        category=mains,
        name="Burger",
        base_price=Decimal("12.50"),
        is_available=False,
        sort_order=7,
    )
    content = "name,category_name,base_price,is_available,description\nBurger,Mains,5.0,true,Juicy\n"

    _, ops = _import(business, content, "items.csv")

    burger.refresh_from_db()
    assert burger.base_price == Decimal("12.50")
    assert burger.is_available is False
    assert burger.sort_order == 7
    assert burger.description == "Juicy"
    assert ops[0].action == "update"
    assert ops[0].previous_data["base_price"] == Decimal("12.50")


@pytest.mark.django_db
def test_group_update_keeps_unmentioned_pricing(business):
    milk = ModifierGroupFactory(
        business=business,
        name="Milk",
        display_type="CHECKBOX",
        sort_order=4,
        quantity_levels=[{"quantity": 1, "name": "Light"}],
    )

    _import(business, "name,display_type,max_select\nMilk,radio,2\n", "modifier_groups.csv")

    milk.refresh_from_db()
    assert milk.display_type == "RADIO"
    assert milk.max_select == 2
    assert milk.sort_order == 4
    assert milk.quantity_levels == [{"quantity": 1, "name": "Light"}]


@pytest.mark.django_db
def test_unknown_size_codes_are_dropped_from_group_prices(business):
    large = ItemSizeFactory(business=business, code="L")
    content = (
        "name,display_type,prices_by_size\n"
        'Milk,RADIO,"[{""sizeCode"": ""L"", ""priceDelta"": 0.5}, {""sizeCode"": ""XXL"", ""priceDelta"": 1.0}]"\n'
    )

    importer, _ = _import(business, content, "modifier_groups.csv")

    milk = ModifierGroup.objects.get(business=business, name="Milk")
    assert milk.prices_by_size == [{"size_id": large.pk, "sizeCode": "L", "priceDelta": 0.5}]
    assert importer.counters["skipped"] == 1


@pytest.mark.django_db
def test_modifiers_resolve_against_persisted_groups(business):
    toppings = ModifierGroupFactory(business=business, name="Toppings")
    content = "group_key,modifier_key,name,display_order\ntoppings,cheese,Cheese,2\n"

    _, first = _import(business, content, "modifiers.csv")
    _, second = _import(business, content, "modifiers.csv")

    cheese = Modifier.objects.get(modifier_group=toppings)
    assert cheese.name == "Cheese"
    assert cheese.display_order == 2
    assert first[0].action == "create"
    assert second[0].action == "update"


@pytest.mark.django_db
def test_default_size_is_assigned_from_item_rows(business):
    medium = ItemSizeFactory(business=business, code="M")
    CategoryFactory(business=business, name="Drinks")
    content = "name,category_name,default_size_code\nLatte,Drinks,m\nMocha,Drinks,XL\n"

    importer, ops = _import(business, content, "items.csv")

    assert Item.objects.get(name="Latte").default_size == medium
    assert Item.objects.get(name="Mocha").default_size is None
    assert importer.counters["skipped"] == 1
    assert len(ops) == 2


@pytest.mark.django_db
def test_override_rows_replace_the_item_assignment(business):
    mains = CategoryFactory(business=business, name="Mains")
    sauces = ModifierGroupFactory(business=business, name="Sauces")
    sides = ModifierGroupFactory(business=business, name="Sides")
    ketchup = ModifierFactory(modifier_group=sauces, name="Ketchup")
    old_assignment = [{"modifier_group_id": sides.pk, "display_order": 0}]
    burger = ItemFactory(business=business, category=mains, name="Burger", modifier_groups=old_assignment)
    untouched = ItemFactory(business=business, category=mains, name="Salad", modifier_groups=old_assignment)
    content = "item_name,item_category_name,group_key,modifier_key\nBurger,Mains,Sauces,Ketchup\n"

    _, ops = _import(business, content, "item_modifier_overrides.csv")

    burger.refresh_from_db()
    untouched.refresh_from_db()
    assert burger.modifier_groups == [
        {
            "modifier_group_id": sauces.pk,
            "display_order": 0,
            "modifier_overrides": [{"modifier_id": ketchup.pk}],
        }
    ]
    assert untouched.modifier_groups == old_assignment
    assert len(ops) == 1
    assert ops[0].action == "update"
    assert ops[0].previous_data["modifier_groups"] == old_assignment


@pytest.mark.django_db
def test_unresolved_override_pairs_are_dropped(business):
    mains = CategoryFactory(business=business, name="Mains")
    sauces = ModifierGroupFactory(business=business, name="Sauces")
    ketchup = ModifierFactory(modifier_group=sauces, name="Ketchup")
    burger = ItemFactory(business=business, category=mains, name="Burger")
    content = (
        "item_name,group_key,modifier_key\n"
        "Burger,Ghost,Boo\n"
        "Burger,Sauces,Ketchup\n"
        "Burger,Sauces,Mayo\n"
        "Pizza,Sauces,Ketchup\n"
    )

    _import(business, content, "item_modifier_overrides.csv")

    burger.refresh_from_db()
    assert burger.modifier_groups == [
        {
            "modifier_group_id": sauces.pk,
            "display_order": 1,
            "modifier_overrides": [{"modifier_id": ketchup.pk}],
        }
    ]


@pytest.mark.django_db
def test_items_without_resolvable_groups_are_left_alone(business):
    burger = ItemFactory(business=business, name="Burger", modifier_groups=[{"modifier_group_id": 99}])

    _, ops = _import(business, "item_name,group_key,modifier_key\nBurger,Ghost,Boo\n", "overrides.csv")

    burger.refresh_from_db()
    assert burger.modifier_groups == [{"modifier_group_id": 99}]
    assert ops == []


@pytest.mark.django_db
def test_dry_run_rolls_back_and_returns_preview(business):
    importer, ops = _import(
        business,
        "type,name,parent\nCATEGORY,Mains,\nITEM,Burger,Mains\n",
        dry_run=True,
    )

    assert [op.action for op in ops] == ["create", "create"]
    assert Category.objects.count() == 0
    assert Item.objects.count() == 0
    assert "[Dry Run] Would create category" in importer.get_output()


@pytest.mark.django_db
def test_run_from_file_reads_path(business, write_csv):
    path = write_csv("categories.csv", "name,sort_order\nMains,2\n")
    importer = CatalogImporter(business, log_to_console=False)

    ops = importer.run_from_file(path)

    assert importer.filename == "categories.csv"
    assert len(ops) == 1
    assert Category.objects.get(business=business).sort_order == 2
    assert "Import Summary" in importer.get_output()


@pytest.mark.django_db
def test_run_from_file_missing_path(business, tmp_path):
    importer = CatalogImporter(business, log_to_console=False)

    with pytest.raises(FileNotFoundError):
        importer.run_from_file(tmp_path / "nope.csv")


def test_rollback_op_as_dict():
    from importers import RollbackOp

    op = RollbackOp("category", "update", 3, {"name": "Mains"})

    assert op.as_dict() == {
        "entity_type": "category",
        "action": "update",
        "id": 3,
        "previous_data": {"name": "Mains"},
    }


@pytest.mark.django_db
def test_blank_display_type_cell_still_imports_a_group(business):
    _, ops = _import(business, "name,display_type\nSauces,\n")

    sauces = ModifierGroup.objects.get(business=business, name="Sauces")
    assert sauces.display_type == ModifierGroup.DisplayType.RADIO
    assert Item.objects.count() == 0
    assert [(op.entity_type, op.action) for op in ops] == [("modifier_group", "create")]


@pytest.mark.django_db
def test_validation_errors_block_the_whole_import(business):
    content = "type,name,parent,min_select,max_select\nCATEGORY,Mains,,,\nMOD_GROUP,Milk,,3,1\n"
    importer = CatalogImporter(business, log_to_console=False, filename="menu.csv")

    with pytest.raises(ImportValidationError) as excinfo:
        importer.save_all(parse_upload(content.encode(), "menu.csv").data)

    assert [(i.file, i.row, i.field) for i in excinfo.value.issues] == [("menu.csv", 3, "min_select")]
    assert Category.objects.count() == 0
    assert ModifierGroup.objects.count() == 0
    assert importer.counters["errors"] == 1
    assert "menu.csv row 3: ModifierGroup.min_select" in importer.get_output()


@pytest.mark.django_db
def test_dry_run_reports_validation_warnings(business):
    content = "type,name,parent,max_select\nMOD_GROUP,Milk,,2\nMODIFIER,Oat,Milk,\n"

    importer, ops = _import(business, content, dry_run=True)

    assert len(ops) == 2
    assert len(importer.validation.warnings) == 1
    assert "max_select (2) is greater than number of modifiers (1)" in importer.get_output()
    assert ModifierGroup.objects.count() == 0
