from __future__ import annotations

import pytest

from pyalmond._codec import decode_tree
from pyalmond.exceptions import (
    AlmondCommandError,
    AlmondConfirmationTimeoutError,
    AlmondRetriesExhaustedError,
    AlmondTransportError,
)
from pyalmond.models.command import CommandResult, CommandStatus
from pyalmond.models.device import DeviceRecord


def test_device_record_reads_data_and_values() -> None:
    entry = decode_tree(
        {
            "Data": {
                "ID": "7",
                "Name": "Lamp",
                "Type": "12",
                "Location": "Kitchen",
                "Manufacturer": "Acme",
                "Model": "L1",
            },
            "DeviceValues": {
                "1": {"Name": "Switch", "Value": "true"},
                "2": {"Name": "Level", "Value": "80"},
            },
        }
    )
    record = DeviceRecord.model_validate(entry)

    assert record.id == "7"
    assert record.type == "12"
    assert record.name == "Lamp"
    assert record.values[1].value is True
    assert record.values[2].value == 80
    assert record.identity() == {
        "name": "Lamp",
        "type": "12",
        "location": "Kitchen",
        "manufacturer": "Acme",
        "model": "L1",
    }


def test_device_record_accepts_flat_removal_entry() -> None:
    record = DeviceRecord.model_validate(decode_tree({"ID": "7", "Type": "10"}))

    assert record.id == "7"
    assert record.type == "10"
    assert record.values == {}
    assert record.identity() == {"type": "10"}


def test_identity_text_survives_value_decoding() -> None:
    # A device literally named "true" must stay a string.
    record = DeviceRecord.model_validate(decode_tree({"Data": {"Name": "true", "Location": "007"}}))
    assert record.name == "true"
    assert record.location == "007"


def test_command_result_raise_for_status() -> None:
    ok = CommandResult(status=CommandStatus.OK, command_type="DeviceList")
    assert ok.success
    assert ok.raise_for_status() is ok

    expected = {
        CommandStatus.FAILED: AlmondCommandError,
        CommandStatus.TRANSPORT_ERROR: AlmondTransportError,
        CommandStatus.RETRIES_EXHAUSTED: AlmondRetriesExhaustedError,
        CommandStatus.CONFIRMATION_TIMEOUT: AlmondConfirmationTimeoutError,
    }
    for status, exc_type in expected.items():
        result = CommandResult(status=status, command_type="UpdateDeviceIndex")
        assert not result.success
        with pytest.raises(exc_type):
            result.raise_for_status()
