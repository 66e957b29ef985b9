from book_inventory.book import BookFilter, BookRecord, Category, is_valid_book_id, new_book_id


def test_new_ids_are_valid_and_unique():
    ids = {new_book_id() for _ in range(100)}
    assert len(ids) == 100
    assert all(is_valid_book_id(i) for i in ids)


def test_malformed_ids():
    for value in ["", "123", "g" * 32, "A" * 32, "a" * 33, None, 42]:
        assert not is_valid_book_id(value)


def test_record_wire_form_round_trip():
    record = BookRecord(
        id="c" * 32,
        title="Steve Jobs",
        author="Walter Isaacson",
        isbn="9781451648539",
        category=Category.BIOGRAPHY,
        publication_year=2011,
        available_copies=0,
        created_at="2024-05-01T10:00:00+00:00",
        updated_at="2024-05-02T10:00:00+00:00",
    )
    data = record.to_dict()
    assert data["category"] == "Biography"
    assert data["publicationYear"] == 2011
    assert data["availableCopies"] == 0

    row = {
        "id": data["id"], "title": data["title"], "author": data["author"], "isbn": data["isbn"],
        "category": data["category"], "publication_year": data["publicationYear"],
        "available_copies": data["availableCopies"],
        "created_at": data["createdAt"], "updated_at": data["updatedAt"],
    }
    assert BookRecord.from_row(row) == record


def test_filter_from_mapping_accepts_both_spellings():
    assert BookFilter.from_mapping({"titleContains": "a", "minYear": 2000}) == BookFilter(title_contains="a", min_year=2000)
    assert BookFilter.from_mapping({"author_contains": "b", "max_year": 1999}) == BookFilter(author_contains="b", max_year=1999)
