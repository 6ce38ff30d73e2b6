"""Tests for TransferMetadata and length parsing."""

import pytest

from resumable_upload.transfer import InvalidArgument, TransferMetadata, parse_length
from resumable_upload.transfer.metadata import MAX_LENGTH


class TestParseLength:
    @pytest.mark.parametrize("value,expected", [
        (0, 0),
        (10, 10),
        ("0", 0),
        ("1048576", 1048576),
        (" 42 ", 42),
    ])
    def test_accepts_counts(self, value, expected):
        assert parse_length(value) == expected

    @pytest.mark.parametrize("value", [
        None, "", "abc", "-1", -1, "1.5", "+5", "0x10", "²", True,
    ])
    def test_rejects_malformed(self, value):
        with pytest.raises(InvalidArgument):
            parse_length(value, "Upload-Length")

    @pytest.mark.parametrize("value", ["9" * 5000, str(MAX_LENGTH + 1), MAX_LENGTH + 1])
    def test_rejects_out_of_range(self, value):
        with pytest.raises(InvalidArgument):
            parse_length(value, "Upload-Length")

    def test_accepts_largest_length(self):
        assert parse_length(str(MAX_LENGTH)) == MAX_LENGTH
        assert parse_length("000" + str(MAX_LENGTH)) == MAX_LENGTH

    def test_error_names_the_field(self):
        with pytest.raises(InvalidArgument, match="Upload-Offset"):
            parse_length(None, "Upload-Offset")


class TestTransferMetadata:
    def test_json_round_trip(self):
        metadata = TransferMetadata(declared_length=10, client_metadata="filename abc")
        restored = TransferMetadata.from_json(metadata.to_json())
        assert restored == metadata

    def test_new_record_is_not_finalized(self):
        metadata = TransferMetadata(declared_length=10)
        assert metadata.is_finalized is False
        assert metadata.final_name is None

    def test_mark_finalized(self):
        metadata = TransferMetadata(declared_length=10)
        metadata.mark_finalized("report.pdf")
        assert metadata.is_finalized is True
        assert metadata.final_name == "report.pdf"
        assert metadata.finalized_at is not None

    def test_from_dict_rejects_bad_length(self):
        with pytest.raises(InvalidArgument):
            TransferMetadata.from_dict({"declared_length": "many"})

    def test_from_dict_requires_length(self):
        with pytest.raises(KeyError):
            TransferMetadata.from_dict({"client_metadata": "x"})
