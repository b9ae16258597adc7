import pytest

from library_ledger.errors import NotFound
from library_ledger.loan import LendingState
from library_ledger.read_model import ReadModel


@pytest.fixture
def catalog(service):
    gatsby = service.add_item("The Great Gatsby", "F. Scott Fitzgerald", 1925, 3).item
    mocking = service.add_item("To Kill a Mockingbird", "Harper Lee", 1960, 2).item
    algorithms = service.add_item("Introduction to Algorithms", "Cormen et al.", 2009, 1).item
    return {"gatsby": gatsby, "mocking": mocking, "algorithms": algorithms}


def test_get_availability_reflects_open_loans(service, catalog):
    model = ReadModel(service.db_file)
    item_id = catalog["gatsby"].id
    assert model.get_availability(item_id) == 3

    service.borrow(item_id, "alice")
    assert model.get_availability(item_id) == 2

    service.return_item(item_id)
    assert model.get_availability(item_id) == 3


def test_get_missing_item(service):
    with pytest.raises(NotFound):
        ReadModel(service.db_file).get_availability(42)


def test_list_returns_items_with_availability(service, catalog):
    service.borrow(catalog["mocking"].id, "alice")

    entries = ReadModel(service.db_file).list()
    assert [e.item.title for e in entries] == [
        "Introduction to Algorithms",
        "To Kill a Mockingbird",
        "The Great Gatsby",
    ]
    by_title = {e.item.title: e for e in entries}
    assert by_title["To Kill a Mockingbird"].available == 1
    assert by_title["The Great Gatsby"].available == 3

    # Entries unpack as (item, available) pairs
    item, available = entries[0]
    assert item.title == "Introduction to Algorithms"
    assert available == 1


@pytest.mark.parametrize("term,expected", [
    ("gatsby", ["The Great Gatsby"]),
    ("HARPER", ["To Kill a Mockingbird"]),
    ("to", ["Introduction to Algorithms", "To Kill a Mockingbird"]),
    ("cormen ET", ["Introduction to Algorithms"]),
    ("tolkien", []),
])
def test_search_matches_title_or_author(service, catalog, term, expected):
    titles = [e.item.title for e in ReadModel(service.db_file).list(term)]
    assert titles == expected


def test_search_treats_wildcards_literally(service, catalog):
    service.add_item("100% Pure", "Anon")
    titles = [e.item.title for e in ReadModel(service.db_file).list("%")]
    assert titles == ["100% Pure"]
    assert ReadModel(service.db_file).list("_") == []


def test_list_limit_and_offset(service, catalog):
    model = ReadModel(service.db_file)
    page = model.list(limit=2)
    assert [e.item.title for e in page] == ["Introduction to Algorithms", "To Kill a Mockingbird"]
    assert [e.item.title for e in model.list(limit=2, offset=2)] == ["The Great Gatsby"]


def test_lending_state(service, catalog):
    item_id = catalog["mocking"].id
    model = ReadModel(service.db_file)
    assert model.get(item_id).state == LendingState.FULL

    service.borrow(item_id, "alice")
    assert model.get(item_id).state == LendingState.PARTIALLY_LOANED

    service.borrow(item_id, "bob")
    assert model.get(item_id).state == LendingState.FULLY_LOANED


def test_to_dict_includes_available(service, catalog):
    data = ReadModel(service.db_file).get(catalog["algorithms"].id).to_dict()
    assert data["available"] == 1
    assert data["total_copies"] == 1
    assert data["title"] == "Introduction to Algorithms"


def test_statistics(service, catalog):
    service.borrow(catalog["gatsby"].id, "alice")
    service.borrow(catalog["algorithms"].id, "bob")

    stats = ReadModel(service.db_file).statistics()
    assert stats == {
        "total_items": 3,
        "unique_authors": 3,
        "total_copies": 6,
        "open_loans": 2,
        "available_copies": 4,
    }


def test_statistics_empty_catalog(service):
    assert ReadModel(service.db_file).statistics()["total_items"] == 0
    assert ReadModel(service.db_file).statistics()["available_copies"] == 0
