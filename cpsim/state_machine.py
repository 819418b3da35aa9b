from dataclasses import dataclass
from typing import Optional


class ChargePointStatus:
    DISCONNECTED = "Disconnected"
    CONNECTING = "Connecting"
    CONNECTED = "Connected"
    AUTHORIZED = "Authorized"
    IN_TRANSACTION = "InTransaction"
    ERROR = "Error"


class ConnectorStatus:
    # any other OCPP status string is stored and reported as is
    AVAILABLE = "Available"
    PREPARING = "Preparing"
    CHARGING = "Charging"
    SUSPENDED_EVSE = "SuspendedEVSE"
    SUSPENDED_EV = "SuspendedEV"
    FINISHING = "Finishing"
    RESERVED = "Reserved"
    UNAVAILABLE = "Unavailable"
    FAULTED = "Faulted"


class Availability:
    OPERATIVE = "Operative"
    INOPERATIVE = "Inoperative"


class ErrorKind:
    TRANSPORT = "TransportError"
    PROTOCOL = "ProtocolError"
    REJECTED = "ConfigurationRejected"
    NO_CONNECTION = "NoConnection"


# storage keys
KEY_CP_STATUS = "CPStatus"
KEY_CONN_STATUS = "ConnStatus"
KEY_CONN_AVAILABILITY = "ConnAvailability"
KEY_TRANSACTION_ID = "TransactionId"
KEY_METER_VALUE = "MeterValue"


@dataclass
class Transaction:
    id_tag: str
    connector_id: int
    meter_start: int
    transaction_id: Optional[int] = None


class ChargePointState:
    """Persisted part of the charge point state.

    Status, connector status, transaction id and meter value live in the
    session store; availability lives in the durable store.
    """

    def __init__(self, session, durable):
        self.session = session
        self.durable = durable

    @property
    def status(self) -> str:
        return self.session.get(KEY_CP_STATUS, ChargePointStatus.DISCONNECTED)

    @status.setter
    def status(self, value: str) -> None:
        self.session.set(KEY_CP_STATUS, value)

    def connector_status(self, cid: int) -> str:
        return self.session.get(f"{KEY_CONN_STATUS}{cid}", ConnectorStatus.AVAILABLE)

    def set_connector_status(self, cid: int, status: str) -> None:
        self.session.set(f"{KEY_CONN_STATUS}{cid}", status)

    def availability(self, cid: int) -> str:
        return self.durable.get(f"{KEY_CONN_AVAILABILITY}{cid}", Availability.OPERATIVE)

    def set_availability(self, cid: int, availability: str) -> None:
        self.durable.set(f"{KEY_CONN_AVAILABILITY}{cid}", availability)

    @property
    def transaction_id(self) -> Optional[int]:
        tx_id = self.session.get(KEY_TRANSACTION_ID)
        return None if tx_id in (None, "") else int(tx_id)

    @transaction_id.setter
    def transaction_id(self, value: Optional[int]) -> None:
        self.session.set(KEY_TRANSACTION_ID, value)

    @property
    def meter_value(self) -> int:
        return int(self.session.get(KEY_METER_VALUE, 0) or 0)

    @meter_value.setter
    def meter_value(self, value: int) -> None:
        self.session.set(KEY_METER_VALUE, int(value))
