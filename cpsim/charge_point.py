"""Charge point protocol engine.

One ChargePoint owns the connection to the central system and every
piece of in-memory protocol state. Connection events, inbound frames
and timers all arrive through one event queue and are handled one at a
time by ``run``; persisted fields are read and written only through
``ChargePointState``.
"""
import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from ocpp.exceptions import OCPPError
from ocpp.messages import Call, CallError, CallResult
from ocpp.v16.enums import AuthorizationStatus, RegistrationStatus

from . import config
from .codec import decode, encode_call, generate_id
from .correlator import Correlator, PendingRequest
from .ocpp_handlers import RequestHandlers
from .scheduler import LoopScheduler, Timer, TimerFired
from .state_machine import (
    Availability,
    ChargePointState,
    ChargePointStatus,
    ConnectorStatus,
    ErrorKind,
    Transaction,
)
from .store import MemoryStore
from .transport import CLEAN_CLOSE, Closed, Error, Message, Opened, ReadyState, Transport

logger = logging.getLogger(__name__)

# simulated cable removal, between StopTransaction and each connector update
CABLE_REMOVAL_DELAY_SEC = 1

_NO_OP_RESULTS = ("Heartbeat", "MeterValues", "StatusNotification")


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ChargePoint(RequestHandlers):
    def __init__(
        self,
        cpid: str = config.CPID,
        session=None,
        durable=None,
        scheduler=None,
        events: Optional[asyncio.Queue] = None,
        transport_factory: Callable = Transport,
        id_generator: Callable[[], str] = generate_id,
        connectors: int = config.CONNECTORS,
    ):
        self.id = cpid
        self.events = events if events is not None else asyncio.Queue()
        self.state = ChargePointState(
            session if session is not None else MemoryStore(),
            durable if durable is not None else MemoryStore(),
        )
        self.scheduler = scheduler if scheduler is not None else LoopScheduler(self.events)
        self.transport_factory = transport_factory
        self.generate_id = id_generator
        self.connectors = connectors

        self.transport = None
        self.correlator = Correlator()
        self.transaction: Optional[Transaction] = None
        self._heartbeat: Optional[Timer] = None

        self._status_change_cb = None
        self._availability_change_cb = None
        self._logging_cb = None

        # either "Accepted" or "Rejected"
        self.remote_start_stop_response = config.REMOTE_START_STOP_RESPONSE
        self.remote_start_delay = config.REMOTE_START_DELAY_SEC

        self._result_handlers = {
            "BootNotification": self._on_boot_notification_result,
            "Authorize": self._on_authorize_result,
            "StartTransaction": self._on_start_transaction_result,
            "StopTransaction": self._on_stop_transaction_result,
        }
        self.build_route_map()

    # ====== observers ======

    def set_status_change_callback(self, cb: Callable[[str, str], None]) -> None:
        self._status_change_cb = cb

    def set_availability_change_callback(self, cb: Callable[[int, str], None]) -> None:
        self._availability_change_cb = cb

    def set_logging_callback(self, cb: Callable[[str], None]) -> None:
        self._logging_cb = cb

    def log_msg(self, msg: str) -> None:
        logger.info(msg)
        if self._logging_cb:
            self._logging_cb(f"[OCPP] {msg}")

    # ====== charge point status ======

    @property
    def status(self) -> str:
        return self.state.status

    def set_status(self, status: str, detail: str = "") -> None:
        self.state.status = status
        if status == ChargePointStatus.ERROR:
            logger.warning(f"status -> {status}: {detail}")
        else:
            logger.debug(f"status -> {status} {detail}")
        if self._status_change_cb:
            self._status_change_cb(status, detail)

    def _fail(self, kind: str, detail: str) -> None:
        self.log_msg(f"{kind}: {detail}")
        self.set_status(ChargePointStatus.ERROR, detail)

    @property
    def pending_action(self) -> Optional[str]:
        return self.correlator.last_action

    # ====== dispatch loop ======

    async def run(self) -> None:
        while True:
            event = await self.events.get()
            try:
                self.handle_event(event)
            except Exception:
                logger.exception(f"failed to handle {type(event).__name__}")

    def handle_event(self, event) -> None:
        if isinstance(event, TimerFired):
            if not event.timer.cancelled:
                event.timer.callback()
            return
        if event.transport is not self.transport:
            logger.debug(f"dropping {type(event).__name__} from a previous connection")
            return
        if isinstance(event, Opened):
            self.on_open()
        elif isinstance(event, Message):
            self.on_message(event.frame)
        elif isinstance(event, Error):
            self.on_error(event.ready_state, event.detail)
        elif isinstance(event, Closed):
            self.on_close(event.code)

    # ====== transport ======

    def connect(self, url: str, cpid: Optional[str] = None) -> None:
        if self.transport is not None:
            self._fail(ErrorKind.TRANSPORT, "Socket already opened. Closing it. Retry later")
            self.transport.close(CLEAN_CLOSE)
            return
        if cpid:
            self.id = cpid
        self.transport = self.transport_factory(url, self.id, self.events)
        self.transport.start()

    def disconnect(self) -> None:
        if self.transport is not None:
            self.transport.close(CLEAN_CLOSE)
        self.set_status(ChargePointStatus.DISCONNECTED)

    def send(self, frame: str) -> bool:
        logger.info(f"[ -> ] {frame}")
        if self.transport is not None and self.transport.send(frame):
            return True
        self._fail(ErrorKind.NO_CONNECTION, "No connection to OCPP server")
        return False

    def send_call(self, action: str, payload: dict) -> str:
        unique_id = self.generate_id()
        if self.send(encode_call(unique_id, action, payload)):
            self.correlator.add(unique_id, action, payload)
        else:
            # no result can come back, only remember what was attempted
            self.correlator.last_action = action
        return unique_id

    def on_open(self) -> None:
        self.set_status(ChargePointStatus.CONNECTING)
        self.send_boot_notification()

    def on_error(self, ready_state: int, detail: str) -> None:
        if ready_state == ReadyState.OPEN:
            msg = f"ws normal error: {detail}"
        elif ready_state == ReadyState.CLOSED:
            msg = f"connection cannot be opened: {detail}"
        else:
            msg = f"websocket error: {detail}"
        self._fail(ErrorKind.TRANSPORT, msg)

    def on_close(self, code: int) -> None:
        self.cancel_heartbeat()
        self.correlator.clear()
        self.transport = None
        if code == CLEAN_CLOSE:
            self.set_status(ChargePointStatus.DISCONNECTED)
            self.log_msg("Connection closed")
        else:
            self._fail(ErrorKind.TRANSPORT, f"Connection error: {code}")

    def on_message(self, frame: str) -> None:
        logger.info(f"[ <- ] {frame}")
        try:
            msg = decode(frame)
        except OCPPError as e:
            logger.warning(f"dropping malformed frame: {e}")
            return
        if isinstance(msg, Call):
            self.handle_call(msg)
        elif isinstance(msg, CallResult):
            self.handle_call_result(msg)
        elif isinstance(msg, CallError):
            self.handle_call_error(msg)

    # ====== results of our own requests ======

    def handle_call_result(self, msg: CallResult) -> None:
        request = self.correlator.pop(msg.unique_id)
        if request is None:
            self.log_msg(
                f"Result for unknown request {msg.unique_id}: {json.dumps(msg.payload)}"
            )
            return
        if request.action in _NO_OP_RESULTS:
            return
        handler = self._result_handlers.get(request.action)
        if handler is None:
            self.log_msg(
                f"Result not handled for {request.action}: {json.dumps(msg.payload)}"
            )
            return
        handler(msg.payload if isinstance(msg.payload, dict) else {}, request)

    def handle_call_error(self, msg: CallError) -> None:
        self.correlator.pop(msg.unique_id)
        self._fail(
            ErrorKind.PROTOCOL, f"ErrorCode: {msg.error_code} ({msg.error_description})"
        )

    def _on_boot_notification_result(self, payload: dict, request: PendingRequest) -> None:
        status = payload.get("status")
        if status == RegistrationStatus.accepted:
            self.log_msg("Connection accepted")
            try:
                interval = int(payload.get("interval"))
            except (TypeError, ValueError):
                interval = 0
            if interval > 0:
                self.set_heartbeat(interval)
            else:
                self.log_msg(f"Ignoring heartbeat interval {payload.get('interval')!r}")
            self.set_status(ChargePointStatus.CONNECTED)
        else:
            self.log_msg("Connection refused by server")
            self._fail(ErrorKind.REJECTED, f"BootNotification {status}")
            self.disconnect()

    def _on_authorize_result(self, payload: dict, request: PendingRequest) -> None:
        status = payload.get("idTagInfo", {}).get("status")
        if status == AuthorizationStatus.accepted:
            self.log_msg("Authorization OK")
            self.set_status(ChargePointStatus.AUTHORIZED)
        else:
            self.log_msg(f"Authorization failed: {status}")

    def _on_start_transaction_result(self, payload: dict, request: PendingRequest) -> None:
        tx_id = payload.get("transactionId")
        if tx_id is None:
            return
        self.transaction = Transaction(
            id_tag=request.payload["idTag"],
            connector_id=request.payload["connectorId"],
            meter_start=request.payload["meterStart"],
            transaction_id=tx_id,
        )
        self.state.transaction_id = tx_id
        self.set_status(ChargePointStatus.IN_TRANSACTION, f"TransactionId: {tx_id}")
        self.log_msg(f"Transaction id is {tx_id}")
        status = payload.get("idTagInfo", {}).get("status", AuthorizationStatus.accepted)
        if status != AuthorizationStatus.accepted:
            self._fail(
                ErrorKind.REJECTED,
                f"StartTransaction {status} for tag {self.transaction.id_tag}",
            )

    def _on_stop_transaction_result(self, payload: dict, request: PendingRequest) -> None:
        # only connector 1 is driven by stop
        self.set_connector_status(1, ConnectorStatus.AVAILABLE)
        self.transaction = None
        self.state.transaction_id = None

    # ====== requests to the central system ======

    def send_boot_notification(self) -> None:
        self.log_msg("Sending BootNotification")
        self.send_call(
            "BootNotification",
            {
                "chargePointVendor": config.CHARGE_POINT_VENDOR,
                "chargePointModel": config.CHARGE_POINT_MODEL,
                "chargePointSerialNumber": config.CHARGE_POINT_SERIAL,
                "chargeBoxSerialNumber": config.CHARGE_POINT_SERIAL,
                "firmwareVersion": config.FIRMWARE_VERSION,
            },
        )

    def authorize(self, id_tag: str) -> None:
        self.log_msg(f"Requesting authorization for tag {id_tag}")
        self.send_call("Authorize", {"idTag": id_tag})

    # ====== heartbeat ======

    def set_heartbeat(self, period: float) -> None:
        self.log_msg(f"Setting heartbeat period to {period}s")
        self.cancel_heartbeat()
        self._heartbeat = self.scheduler.every(period, self.send_heartbeat)

    def cancel_heartbeat(self) -> None:
        if self._heartbeat is not None:
            self._heartbeat.cancel()
            self._heartbeat = None

    def send_heartbeat(self) -> None:
        self.log_msg("Heartbeat")
        self.send_call("Heartbeat", {})

    # ====== transactions ======

    def start_transaction(self, id_tag: str, connector_id: int = 1, reservation_id: int = 0) -> None:
        self.set_status(ChargePointStatus.IN_TRANSACTION)
        mv = self.meter_value()
        payload = {
            "connectorId": connector_id,
            "idTag": id_tag,
            "meterStart": mv,
            "timestamp": utc_now(),
        }
        if reservation_id != 0:
            payload["reservationId"] = reservation_id
        self.log_msg(
            f"Starting Transaction for tag {id_tag} (connector:{connector_id}, meter value={mv})"
        )
        self.send_call("StartTransaction", payload)
        self.set_connector_status(connector_id, ConnectorStatus.CHARGING, True)

    def stop_transaction(self, id_tag: str = "DEADBEEF") -> None:
        tx_id = self.state.transaction_id
        if tx_id is None:
            self.log_msg("No transaction to stop")
            return
        self.stop_transaction_with_id(tx_id, id_tag)

    def stop_transaction_with_id(self, transaction_id: int, id_tag: str = "DEADBEEF") -> None:
        self.set_status(ChargePointStatus.AUTHORIZED)
        mv = self.meter_value()
        self.log_msg(f"Stopping Transaction with id {transaction_id} (meterValue={mv})")
        payload = {
            "transactionId": transaction_id,
            "timestamp": utc_now(),
            "meterStop": mv,
        }
        if id_tag:
            payload["idTag"] = id_tag
        self.send_call("StopTransaction", payload)
        self.scheduler.after(CABLE_REMOVAL_DELAY_SEC, self._on_cable_unlocked)

    def _on_cable_unlocked(self) -> None:
        self.set_connector_status(1, ConnectorStatus.FINISHING, True)
        self.scheduler.after(
            CABLE_REMOVAL_DELAY_SEC,
            lambda: self.set_connector_status(1, ConnectorStatus.AVAILABLE, True),
        )

    # ====== meter ======

    def meter_value(self) -> int:
        return self.state.meter_value

    def set_meter_value(self, value: int, update_server: bool = False) -> None:
        self.state.meter_value = value
        if update_server:
            self.send_meter_value()

    def send_meter_value(self, connector_id: int = 1) -> None:
        meter = self.meter_value()
        payload = {"connectorId": connector_id}
        tx_id = self.state.transaction_id
        if tx_id is not None:
            payload["transactionId"] = tx_id
        payload["meterValue"] = [
            {
                "timestamp": utc_now(),
                "sampledValue": [
                    {
                        "value": str(meter),
                        "context": "Sample.Periodic",
                        "measurand": "Energy.Active.Import.Register",
                        "location": "Outlet",
                        "unit": "kWh",
                    }
                ],
            }
        ]
        self.log_msg(f"Send Meter Values: {meter} (connector {connector_id})")
        self.send_call("MeterValues", payload)

    # ====== connectors ======

    def connector_status(self, connector_id: int) -> str:
        return self.state.connector_status(connector_id)

    def set_connector_status(self, connector_id: int, status: str, notify: bool = False) -> None:
        self.state.set_connector_status(connector_id, status)
        if notify:
            self.send_status_notification(connector_id)

    def send_status_notification(self, connector_id: int) -> None:
        st = self.connector_status(connector_id)
        self.log_msg(f"Sending StatusNotification for connector {connector_id}: {st}")
        self.send_call(
            "StatusNotification",
            {
                "connectorId": connector_id,
                "errorCode": "NoError",
                "status": st,
                "timestamp": utc_now(),
            },
        )

    def availability(self, connector_id: int = 0) -> str:
        return self.state.availability(connector_id)

    def set_connector_availability(self, connector_id: int, availability: str) -> None:
        """Apply a server controlled availability.

        Connector 0 is the charge point itself: its availability is
        cascaded to every physical connector.
        """
        self.state.set_availability(connector_id, availability)
        if availability == Availability.INOPERATIVE:
            self.set_connector_status(connector_id, ConnectorStatus.UNAVAILABLE, True)
        elif (
            availability == Availability.OPERATIVE
            and self.connector_status(connector_id) == ConnectorStatus.UNAVAILABLE
        ):
            self.set_connector_status(connector_id, ConnectorStatus.AVAILABLE, True)
        if self._availability_change_cb:
            self._availability_change_cb(connector_id, availability)
        if connector_id == 0:
            for cid in range(1, self.connectors + 1):
                self.set_connector_availability(cid, availability)

    def connector_ids(self):
        return range(0, self.connectors + 1)

    def snapshot(self) -> dict:
        return {
            "id": self.id,
            "status": self.status,
            "pending_action": self.pending_action,
            "transaction_id": self.state.transaction_id,
            "meter_value": self.meter_value(),
            "connectors": {
                cid: {
                    "status": self.connector_status(cid),
                    "availability": self.availability(cid),
                }
                for cid in self.connector_ids()
            },
        }
