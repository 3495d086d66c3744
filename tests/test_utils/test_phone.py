"""
Tests for phone normalization.
"""
import pytest

from debt_agent.utils.phone import normalize_phone, to_channel_address


class TestNormalizePhone:
    """Test canonical phone form."""

    @pytest.mark.parametrize("raw,expected", [
        ("081234567890", "6281234567890"),
        ("+62 812-3456-7890", "6281234567890"),
        ("6281234567890", "6281234567890"),
        ("81234567890", "6281234567890"),
        ("(0812) 3456 7890", "6281234567890"),
        ("6281234567890@s.whatsapp.net", "6281234567890"),
    ])
    def test_formats_converge(self, raw, expected):
        assert normalize_phone(raw) == expected

    def test_custom_country_code(self):
        assert normalize_phone("0412 345 678", country_code="61") == "61412345678"

    @pytest.mark.parametrize("raw", ["", "abc", "@s.whatsapp.net", "+-()"])
    def test_rejects_input_without_digits(self, raw):
        with pytest.raises(ValueError):
            normalize_phone(raw)

    def test_rejects_non_string(self):
        with pytest.raises(ValueError):
            normalize_phone(81234567890)


class TestChannelAddress:

    def test_appends_suffix(self):
        assert to_channel_address("0812-3456-7890") == "6281234567890@s.whatsapp.net"

    def test_address_round_trips(self):
        address = to_channel_address("081234567890")
        assert to_channel_address(address) == address
