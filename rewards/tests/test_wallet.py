import pytest

from rewards.wallet import is_valid_address, normalize_address


class TestIsValidAddress:
    """Tests for wallet address syntax."""

    @pytest.mark.parametrize("address", [
        "0xABCDEF0123456789ABCDEF0123456789ABCDEF01",
        "0xabcdef0123456789abcdef0123456789abcdef01",
        "0xAbCdEf0123456789aBcDeF0123456789AbCdEf01",
        "0x0000000000000000000000000000000000000000",
    ])
    def test_valid(self, address):
        assert is_valid_address(address) is True

    @pytest.mark.parametrize("address", [
        "",
        "0x",
        "ABCDEF0123456789ABCDEF0123456789ABCDEF0123",
        "0XABCDEF0123456789ABCDEF0123456789ABCDEF01",
        "0xABCDEF0123456789ABCDEF0123456789ABCDEF0",
        "0xABCDEF0123456789ABCDEF0123456789ABCDEF012",
        "0xGBCDEF0123456789ABCDEF0123456789ABCDEF01",
        " 0xABCDEF0123456789ABCDEF0123456789ABCDEF01",
        "0xABCDEF0123456789ABCDEF0123456789ABCDEF01\n",
    ])
    def test_invalid(self, address):
        assert is_valid_address(address) is False

    @pytest.mark.parametrize("value", [None, 42, b"0xABCDEF0123456789ABCDEF0123456789ABCDEF01"])
    def test_non_string(self, value):
        assert is_valid_address(value) is False

    def test_does_not_normalize(self):
        address = "0xABCDEF0123456789ABCDEF0123456789ABCDEF01"
        assert is_valid_address(address)
        assert normalize_address(address) == address.lower()
