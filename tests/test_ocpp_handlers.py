from conftest import request

from cpsim.state_machine import Availability, ChargePointStatus, ConnectorStatus


def test_unknown_action_not_implemented(connected):
    request(connected, "id1", "UnknownAction", {})
    assert connected.transport.sent == ['[4,"id1","NotImplemented"]']


def test_remote_start_rejected(connected, scheduler):
    connected.remote_start_stop_response = "Rejected"
    request(connected, "id2", "RemoteStartTransaction", {"idTag": "T2"})

    assert connected.transport.frames() == [[3, "id2", {"status": "Rejected"}]]
    scheduler.advance(60)
    assert connected.transport.calls("StartTransaction") == []


def test_remote_start_waits_for_plug_in(connected, scheduler):
    connected.remote_start_delay = 5
    request(connected, "id3", "RemoteStartTransaction", {"idTag": "T3", "connectorId": 2})

    assert connected.transport.frames()[0] == [3, "id3", {"status": "Accepted"}]
    scheduler.advance(4)
    assert connected.transport.calls("StartTransaction") == []

    scheduler.advance(1)
    start = connected.transport.last_call("StartTransaction")
    assert start[3]["idTag"] == "T3"
    assert start[3]["connectorId"] == 2
    assert connected.status == ChargePointStatus.IN_TRANSACTION


def test_remote_start_without_id_tag(connected):
    request(connected, "id4", "RemoteStartTransaction", {})
    frame = connected.transport.frames()[0]
    assert frame[:3] == [4, "id4", "FormationViolation"]


def test_remote_stop(connected, scheduler):
    request(connected, "id5", "RemoteStopTransaction", {"transactionId": 42})

    assert connected.transport.frames()[0] == [3, "id5", {"status": "Accepted"}]
    assert connected.transport.last_call("StopTransaction")[3]["transactionId"] == 42
    assert connected.status == ChargePointStatus.AUTHORIZED
    scheduler.advance(2)
    assert connected.connector_status(1) == ConnectorStatus.AVAILABLE


def test_remote_stop_rejected(connected):
    connected.remote_start_stop_response = "Rejected"
    request(connected, "id6", "RemoteStopTransaction", {"transactionId": 42})
    assert connected.transport.frames() == [[3, "id6", {"status": "Rejected"}]]


def test_trigger_heartbeat(connected):
    request(connected, "id7", "TriggerMessage", {"requestedMessage": "Heartbeat"})
    frames = connected.transport.frames()
    assert frames[0] == [3, "id7", {"status": "Accepted"}]
    assert frames[1][2] == "Heartbeat"


def test_trigger_status_notification_for_connector(connected):
    connected.set_connector_status(2, ConnectorStatus.PREPARING)
    request(
        connected, "id8", "TriggerMessage",
        {"requestedMessage": "StatusNotification", "connectorId": 2},
    )
    sn = connected.transport.last_call("StatusNotification")[3]
    assert (sn["connectorId"], sn["status"]) == (2, "Preparing")


def test_trigger_boot_and_meter_values(connected):
    request(connected, "id9", "TriggerMessage", {"requestedMessage": "BootNotification"})
    request(connected, "id10", "TriggerMessage", {"requestedMessage": "MeterValues"})
    assert len(connected.transport.calls("BootNotification")) == 1
    assert connected.transport.last_call("MeterValues")[3]["connectorId"] == 0


def test_trigger_firmware_status_does_nothing(connected):
    request(connected, "id11", "TriggerMessage", {"requestedMessage": "FirmwareStatusNotification"})
    assert connected.transport.frames() == [[3, "id11", {"status": "Accepted"}]]


def test_change_availability(connected):
    request(connected, "id12", "ChangeAvailability", {"connectorId": 0, "type": "Inoperative"})

    assert connected.transport.frames()[0] == [3, "id12", {"status": "Accepted"}]
    for cid in (0, 1, 2):
        assert connected.availability(cid) == Availability.INOPERATIVE
        assert connected.connector_status(cid) == ConnectorStatus.UNAVAILABLE


def test_unlock_connector(connected):
    request(connected, "id13", "UnlockConnector", {"connectorId": 1})
    assert connected.transport.frames() == [[3, "id13", {"status": "Unlocked"}]]


def test_get_configuration(connected):
    request(connected, "id14", "GetConfiguration", {})
    assert connected.transport.frames() == [[
        3,
        "id14",
        {
            "configurationKey": [{"key": "HeartbeatInterval", "readonly": False, "value": "900"}],
            "unknownKey": [],
        },
    ]]


def test_get_configuration_unknown_key(connected):
    request(connected, "id15", "GetConfiguration", {"key": ["HeartbeatInterval", "Foo"]})
    result = connected.transport.frames()[0][2]
    assert [k["key"] for k in result["configurationKey"]] == ["HeartbeatInterval"]
    assert result["unknownKey"] == ["Foo"]


def test_reset_acknowledges_then_disconnects(connected):
    transport = connected.transport
    request(connected, "id16", "Reset", {"type": "Soft"})

    assert transport.frames() == [[3, "id16", {"status": "Accepted"}]]
    assert transport.close_code == 3001
    assert connected.status == ChargePointStatus.DISCONNECTED


def test_request_without_payload(connected):
    request(connected, "id17", "UnlockConnector")
    assert connected.transport.frames() == [[3, "id17", {"status": "Unlocked"}]]
