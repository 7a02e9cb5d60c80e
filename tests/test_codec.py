from __future__ import annotations

import pytest

from pyalmond._codec import decode_tree, decode_value, encode_tree, encode_value


@pytest.mark.parametrize("value", [True, False, 0, 42, -7, 3.5, "Kitchen", ""])
def test_round_trip(value: object) -> None:
    decoded = decode_value(encode_value(value))
    assert decoded == value
    assert type(decoded) is type(value)


def test_decode_booleans_and_numbers() -> None:
    assert decode_value("true") is True
    assert decode_value("false") is False
    assert decode_value("42") == 42
    assert decode_value("-1") == -1
    assert decode_value("21.5") == 21.5


@pytest.mark.parametrize("text", ["007", " 42", "42 ", "+5", "1e3", "1_000", "nan", "inf", "12abc", "True", "-0"])
def test_decode_keeps_strings_that_do_not_round_trip(text: str) -> None:
    assert decode_value(text) == text


def test_decode_tree_is_recursive_and_leaves_input_alone() -> None:
    wire = {
        "Success": "true",
        "Devices": {"7": {"Data": {"ID": "7", "Name": "Lamp"}, "DeviceValues": {"1": {"Value": "false"}}}},
        "List": ["1", "x"],
    }
    decoded = decode_tree(wire)

    assert decoded["Success"] is True
    assert decoded["Devices"]["7"]["Data"]["ID"] == 7
    assert decoded["Devices"]["7"]["DeviceValues"]["1"]["Value"] is False
    assert decoded["List"] == [1, "x"]
    # keys are never decoded
    assert "7" in decoded["Devices"]
    assert wire["Success"] == "true"


def test_encode_tree_stringifies_every_leaf_without_mutating() -> None:
    request = {"CommandType": "UpdateDeviceIndex", "ID": 7, "Index": 1, "Value": True, "Extra": {"n": None}}
    encoded = encode_tree(request)

    assert encoded == {
        "CommandType": "UpdateDeviceIndex",
        "ID": "7",
        "Index": "1",
        "Value": "true",
        "Extra": {"n": ""},
    }
    assert request["Value"] is True
    assert request["Extra"] == {"n": None}


@pytest.mark.parametrize("text", ["1.0", "0.0", "1e-05", "1E21", "1.50"])
def test_decode_keeps_non_canonical_number_text(text: str) -> None:
    assert decode_value(text) == text


def test_decode_canonical_small_and_large_numbers() -> None:
    assert decode_value("0.00001") == 1e-05
    assert decode_value("1.5e-7") == 1.5e-07
    assert decode_value("1e+21") == 1e21
    assert decode_value("-0.5") == -0.5


def test_encode_numbers_in_hub_form() -> None:
    assert encode_value(10.0) == "10"
    assert encode_value(-2.0) == "-2"
    assert encode_value(1e-05) == "0.00001"
    assert encode_value(1.5e-07) == "1.5e-7"
    assert encode_value(1e21) == "1e+21"
    assert encode_value(123456789012345680000.0) == "123456789012345680000"
