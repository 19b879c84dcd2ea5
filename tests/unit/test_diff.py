from cardsync.vcard.card import Card
from cardsync.vcard.codec import ListValue
from cardsync.vcard.diff import diff, has_relevant_diff
from cardsync.vcard.parser import parse_vcards


def _parse(*lines: str) -> Card:
    raw = "".join(line + "\r\n" for line in ["BEGIN:VCARD", "VERSION:4.0", *lines, "END:VCARD"])
    (card,) = parse_vcards(raw)
    return card


def test_identical_cards_have_no_diff(single_contact) -> None:
    a = parse_vcards(single_contact)[0]
    b = parse_vcards(single_contact)[0]
    assert diff(a, b) == []
    assert has_relevant_diff(a, b) is False


def test_property_order_does_not_matter() -> None:
    a = _parse("FN:A", "TEL:1", "NOTE:n")
    b = _parse("NOTE:n", "FN:A", "TEL:1")
    assert has_relevant_diff(a, b) is False


def test_photo_only_change_is_ignored(png_b64) -> None:
    a = _parse("FN:A", f"PHOTO;ENCODING=b;TYPE=png:{png_b64}")
    b = _parse("FN:A", "PHOTO;ENCODING=b;TYPE=png:AAAA")
    assert [d.name for d in diff(a, b)] == ["PHOTO"]
    assert has_relevant_diff(a, b) is False


def test_photo_and_other_change_is_relevant() -> None:
    a = _parse("FN:A", "PHOTO;ENCODING=b;TYPE=png:AAAA")
    b = _parse("FN:B", "PHOTO;ENCODING=b;TYPE=png:BBBB")
    assert [d.name for d in diff(a, b)] == ["FN", "PHOTO"]
    assert has_relevant_diff(a, b) is True


def test_added_property_is_reported() -> None:
    a = _parse("FN:A")
    b = a.copy()
    b.update_value("CATEGORIES", ListValue(["x", "y"], ","))
    (change,) = diff(a, b)
    assert change.name == "CATEGORIES"
    assert change.before is None
    assert change.after is b.get("CATEGORIES")
    assert has_relevant_diff(a, b) is True


def test_param_change_is_relevant() -> None:
    a = _parse("FN:A", "TEL;TYPE=home:1")
    b = _parse("FN:A", "TEL;TYPE=work:1")
    assert has_relevant_diff(a, b) is True


def test_list_delimiter_is_part_of_value() -> None:
    a = _parse("FN:A", "CATEGORIES:x,y")
    b = _parse("FN:A", "CATEGORIES:x;y")
    assert has_relevant_diff(a, b) is True
