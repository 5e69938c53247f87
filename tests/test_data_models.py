import pytest
from pydantic import ValidationError

from catalog_api.data_models import AggregateSummary, Book, PriceRange, SearchCriteria


def test_book_defaults_match_empty_request():
    book = Book()
    assert book.title == ""
    assert book.price == 0
    assert book.ebook_available is False
    assert book.publish_date is None


def test_price_range_accepts_from_alias_and_field_name():
    assert PriceRange(**{"from": 10, "to": 20}).from_ == 10
    assert PriceRange(from_=10, to=20).to == 20


def test_price_range_without_upper_bound_is_open():
    price_range = PriceRange(from_=15)
    assert price_range.to is None
    assert price_range.is_unset is False


def test_price_range_rejects_inverted_bounds():
    with pytest.raises(ValidationError):
        PriceRange(from_=30, to=10)


def test_sentinel_price_range_is_unset():
    assert PriceRange(from_=-1, to=-1).is_unset is True


def test_search_criteria_normalizes_blank_strings_to_absent():
    criteria = SearchCriteria(title="", author_name="   ")
    assert criteria.title is None
    assert criteria.author_name is None
    assert criteria.is_empty


def test_search_criteria_drops_sentinel_price_range():
    criteria = SearchCriteria(price_range=PriceRange(from_=-1, to=-1))
    assert criteria.price_range is None
    assert criteria.is_empty


def test_search_criteria_keeps_real_filters():
    criteria = SearchCriteria(title="Dune", price_range=PriceRange(from_=0, to=0))
    assert criteria.title == "Dune"
    assert criteria.price_range.to == 0
    assert not criteria.is_empty


def test_aggregate_summary_rejects_negative_counts():
    with pytest.raises(ValidationError):
        AggregateSummary(books=-1, authors=0)
