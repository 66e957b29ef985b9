from datetime import date

import pytest

from book_inventory.book import BookCandidate, BookRecord, Category
from book_inventory.errors import FieldRequired, InvalidCategory, InvalidCopies, InvalidYear
from book_inventory.validators import MAX_AVAILABLE_COPIES, BookValidator, validate

CURRENT_YEAR = date.today().year


def make_candidate(**overrides):
    fields = dict(
        title="Dune",
        author="Frank Herbert",
        isbn="9780441013593",
        category="Fiction",
        publication_year=1965,
    )
    fields.update(overrides)
    return BookCandidate(**fields)


def make_record(**overrides):
    fields = dict(
        id="a" * 32,
        title="Dune",
        author="Frank Herbert",
        isbn="9780441013593",
        category=Category.FICTION,
        publication_year=1965,
        available_copies=2,
        created_at="2024-01-01T00:00:00+00:00",
        updated_at="2024-01-01T00:00:00+00:00",
    )
    fields.update(overrides)
    return BookRecord(**fields)


def test_trims_text_fields():
    result = validate(make_candidate(title="  Dune ", author="\tFrank Herbert\n", isbn=" 9780441013593 "))
    assert result.title == "Dune"
    assert result.author == "Frank Herbert"
    assert result.isbn == "9780441013593"


def test_copies_default_to_one_on_create():
    result = validate(make_candidate())
    assert result.available_copies == 1
    assert result.category is Category.FICTION


@pytest.mark.parametrize("field", ["title", "author", "isbn"])
def test_blank_text_field_is_required(field):
    with pytest.raises(FieldRequired) as exc_info:
        validate(make_candidate(**{field: "   "}))
    assert exc_info.value.field == field


@pytest.mark.parametrize("field", ["title", "author", "isbn", "category", "publication_year"])
def test_missing_field_on_create(field):
    candidate = make_candidate()
    setattr(candidate, field, None)
    with pytest.raises(FieldRequired):
        validate(candidate)


def test_first_failure_wins():
    with pytest.raises(FieldRequired) as exc_info:
        validate(make_candidate(title="", category="Poetry", publication_year=12))
    assert exc_info.value.field == "title"


@pytest.mark.parametrize("value", ["Poetry", "fiction", "", 3])
def test_invalid_category(value):
    with pytest.raises(InvalidCategory) as exc_info:
        validate(make_candidate(category=value))
    assert exc_info.value.value == value


def test_every_category_is_accepted():
    for category in Category.values():
        assert validate(make_candidate(category=category)).category.value == category


def test_year_boundaries():
    assert validate(make_candidate(publication_year=1000)).publication_year == 1000
    assert validate(make_candidate(publication_year=CURRENT_YEAR)).publication_year == CURRENT_YEAR
    with pytest.raises(InvalidYear):
        validate(make_candidate(publication_year=999))
    with pytest.raises(InvalidYear):
        validate(make_candidate(publication_year=CURRENT_YEAR + 1))


@pytest.mark.parametrize("value", ["1999", 1999.5, True, [1999]])
def test_non_integer_year(value):
    with pytest.raises(InvalidYear):
        validate(make_candidate(publication_year=value))


def test_integral_float_year_is_normalized():
    assert validate(make_candidate(publication_year=2001.0)).publication_year == 2001


def test_year_bound_can_be_injected():
    with pytest.raises(InvalidYear):
        validate(make_candidate(publication_year=2030), current_year=2029)
    assert validate(make_candidate(publication_year=2030), current_year=2030).publication_year == 2030


def test_copies():
    assert validate(make_candidate(available_copies=0)).available_copies == 0
    with pytest.raises(InvalidCopies):
        validate(make_candidate(available_copies=-1))
    with pytest.raises(InvalidCopies):
        validate(make_candidate(available_copies="2"))
    with pytest.raises(InvalidCopies):
        validate(make_candidate(available_copies=False))


def test_copies_must_fit_a_database_integer():
    assert validate(make_candidate(available_copies=MAX_AVAILABLE_COPIES)).available_copies == MAX_AVAILABLE_COPIES
    for value in (MAX_AVAILABLE_COPIES + 1, 10**20, 1e20):
        with pytest.raises(InvalidCopies) as excinfo:
            validate(make_candidate(available_copies=value))
        assert excinfo.value.field == "availableCopies"


def test_patch_is_merged_over_existing_record():
    existing = make_record()
    result = BookValidator.validate(BookCandidate(title="  Dune Messiah "), existing)
    assert result.title == "Dune Messiah"
    assert result.author == existing.author
    assert result.isbn == existing.isbn
    assert result.available_copies == 2


def test_patch_cannot_empty_a_required_field():
    with pytest.raises(FieldRequired) as exc_info:
        validate(BookCandidate(author=""), make_record())
    assert exc_info.value.field == "author"


def test_patch_is_checked_against_year_bound():
    with pytest.raises(InvalidYear):
        validate(BookCandidate(publication_year=CURRENT_YEAR + 1), make_record())


def test_validate_does_not_mutate_input():
    candidate = make_candidate(title="  Dune  ")
    validate(candidate)
    assert candidate.title == "  Dune  "
    assert candidate.available_copies is None


def test_candidate_from_mapping_ignores_store_owned_fields():
    candidate = BookCandidate.from_mapping({
        "id": "x",
        "createdAt": "yesterday",
        "title": "Dune",
        "publicationYear": 1965,
        "available_copies": 4,
        "genre": "Sci-fi",
    })
    assert candidate.supplied() == {"title": "Dune", "publication_year": 1965, "available_copies": 4}
