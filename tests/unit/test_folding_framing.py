import pytest

from cardsync.vcard.errors import FramingError
from cardsync.vcard.folding import FOLD_WIDTH, fold, unfold
from cardsync.vcard.framing import count_vcard_entries, raw_to_vcard_lines


class TestFolding:
    def test_short_value_not_folded(self):
        assert fold("short") == "short"

    def test_fold_after_every_full_chunk(self):
        value = "x" * (FOLD_WIDTH * 2 + 3)
        folded = fold(value)
        assert folded == "x" * 75 + "\r\n " + "x" * 75 + "\r\n " + "xxx"

    def test_exact_width_gets_trailing_continuation(self):
        assert fold("y" * 75) == "y" * 75 + "\r\n "

    def test_unfold_space_and_tab(self):
        assert unfold("NOTE:abc\r\n def\r\n\tghi\r\n") == "NOTE:abcdefghi\r\n"

    def test_unfold_keeps_second_leading_space(self):
        assert unfold("NOTE:a\r\n  b") == "NOTE:a b"

    def test_unfold_inverts_fold(self):
        value = "0123456789" * 20
        assert unfold(fold(value)) == value


class TestCountEntries:
    def test_empty_input(self):
        assert count_vcard_entries("") == 0

    def test_two_records(self, address_book):
        assert count_vcard_entries(address_book) == 2

    def test_single_record(self, single_contact):
        assert count_vcard_entries(single_contact) == 1


class TestRawToLines:
    def test_empty_input(self):
        assert raw_to_vcard_lines("") == []

    def test_lines_per_record(self, address_book):
        records = raw_to_vcard_lines(address_book)
        assert [len(r) for r in records] == [6, 7]
        for lines in records:
            assert lines[0] == "BEGIN:VCARD"
            assert lines[-1] == "END:VCARD"

    def test_lines_are_unfolded(self, single_contact):
        (lines,) = raw_to_vcard_lines(single_contact)
        assert len(lines) == 10
        assert lines[8] == "NOTE:" + "a" * 70 + "\\, and more"

    def test_text_outside_records_is_ignored(self):
        raw = "garbage\r\nBEGIN:VCARD\r\nVERSION:4.0\r\nFN:A\r\nEND:VCARD\r\ntrailer\r\n"
        assert raw_to_vcard_lines(raw) == [["BEGIN:VCARD", "VERSION:4.0", "FN:A", "END:VCARD"]]

    def test_unbalanced_markers(self):
        raw = "BEGIN:VCARD\r\nVERSION:4.0\r\nFN:A\r\n"
        with pytest.raises(FramingError, match="Unequal number"):
            raw_to_vcard_lines(raw)
