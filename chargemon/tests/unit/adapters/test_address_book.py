import json

import pytest

from chargemon.adapters.address_book import AddressBook
from chargemon.domain.errors import PersistenceError


def test_address_round_trip(tmp_path):
    book = AddressBook(tmp_path)

    book.set("192.168.1.19")

    assert book.get() == "192.168.1.19"
    assert AddressBook(tmp_path).get() == "192.168.1.19"
    with book.path.open("r", encoding="utf-8") as fh:
        assert json.load(fh) == {"ip_scanner": {"saved_ip": "192.168.1.19"}}


def test_absent_address_returns_none(tmp_path):
    book = AddressBook(tmp_path / "not-created-yet")

    assert book.get() is None


def test_set_overwrites_and_keeps_other_records(tmp_path):
    book = AddressBook(tmp_path)
    book.path.write_text(json.dumps({"display": {"brightness": 80}}), encoding="utf-8")

    book.set("10.0.0.5")
    book.set("10.0.0.6")

    with book.path.open("r", encoding="utf-8") as fh:
        persisted = json.load(fh)
    assert persisted["display"] == {"brightness": 80}
    assert persisted["ip_scanner"]["saved_ip"] == "10.0.0.6"
    assert not list(tmp_path.glob(".address_book.*.tmp"))


def test_corrupt_document_raises_persistence_error(tmp_path):
    book = AddressBook(tmp_path)
    book.path.write_text("{not json", encoding="utf-8")

    with pytest.raises(PersistenceError):
        book.get()


def test_invalid_address_is_rejected_and_nothing_written(tmp_path):
    book = AddressBook(tmp_path)

    with pytest.raises(ValueError):
        book.set("192.168.1")

    assert not book.path.exists()


def test_clear_removes_only_the_address(tmp_path):
    book = AddressBook(tmp_path)
    book.set("10.0.0.5")

    book.clear()

    assert book.get() is None
    assert book.path.exists()


@pytest.mark.parametrize("section", ["10.0.0.5", ["x"], 7])
def test_non_object_section_raises_persistence_error(tmp_path, section):
    book = AddressBook(tmp_path)
    book.path.write_text(json.dumps({"ip_scanner": section}), encoding="utf-8")

    with pytest.raises(PersistenceError):
        book.get()


def test_stored_value_that_is_not_an_address_raises_persistence_error(tmp_path):
    book = AddressBook(tmp_path)
    book.path.write_text(json.dumps({"ip_scanner": {"saved_ip": "hub.local"}}), encoding="utf-8")

    with pytest.raises(PersistenceError):
        book.get()


def test_set_rewrites_corrupt_document(tmp_path, caplog):
    book = AddressBook(tmp_path)
    book.path.write_text("{not json", encoding="utf-8")

    with caplog.at_level("WARNING"):
        book.set("10.0.0.5")

    assert book.get() == "10.0.0.5"
    assert "Discarding unreadable address book" in caplog.text


def test_set_replaces_non_object_section(tmp_path):
    book = AddressBook(tmp_path)
    book.path.write_text(json.dumps({"ip_scanner": ["x"], "display": {"brightness": 80}}), encoding="utf-8")

    book.set("10.0.0.5")

    with book.path.open("r", encoding="utf-8") as fh:
        persisted = json.load(fh)
    assert persisted == {"ip_scanner": {"saved_ip": "10.0.0.5"}, "display": {"brightness": 80}}
