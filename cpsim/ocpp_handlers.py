import inspect
import logging

from ocpp.charge_point import camel_to_snake_case, snake_to_camel_case
from ocpp.exceptions import FormationViolationError, OCPPError
from ocpp.routing import after, create_route_map, on
from ocpp.v16.enums import (
    Action,
    AvailabilityStatus,
    MessageTrigger,
    RemoteStartStopStatus,
    ResetStatus,
    TriggerMessageStatus,
    UnlockStatus,
)

from .codec import encode_error, encode_result

logger = logging.getLogger(__name__)

# keys reported by GetConfiguration: key -> (readonly, value)
CONFIGURATION = {
    "HeartbeatInterval": (False, "900"),
}


class RequestHandlers:
    """Requests initiated by the central system.

    ``@on`` handlers build the CALLRESULT payload, ``@after`` handlers run
    once that result has been handed to the transport. Mixed into
    ChargePoint, which provides the state machine operations used here.
    """

    def build_route_map(self) -> None:
        # keyed by the action name as it appears on the wire
        self._route_map = {
            getattr(action, "value", action): route
            for action, route in create_route_map(self).items()
        }

    def handle_call(self, msg) -> None:
        route = self._route_map.get(msg.action, {})
        handler = route.get("_on_action")
        if handler is None:
            self.log_msg(f"Request not implemented: {msg.action}")
            self.send(encode_error(msg.unique_id, "NotImplemented"))
            return

        kwargs = camel_to_snake_case(msg.payload)
        try:
            if not isinstance(kwargs, dict):
                raise FormationViolationError(details={"cause": "payload is not an object"})
            try:
                inspect.signature(handler).bind(**kwargs)
            except TypeError as e:
                raise FormationViolationError(details={"cause": str(e)})
            response = handler(**kwargs)
        except OCPPError as e:
            logger.warning(f"{msg.action} failed: {e}")
            self.send(encode_error(msg.unique_id, e.code, e.description))
            return

        self.send(encode_result(msg.unique_id, snake_to_camel_case(response)))
        after_handler = route.get("_after_action")
        if after_handler is not None:
            after_handler(**kwargs)

    @on(Action.Reset)
    def on_reset(self, type=None, **kwargs):
        # SOFT and HARD are handled the same way
        self.log_msg(f"Reset Request: type={type}")
        return {"status": ResetStatus.accepted}

    @after(Action.Reset)
    def after_reset(self, **kwargs):
        self.disconnect()

    @on(Action.RemoteStartTransaction)
    def on_remote_start(self, id_tag, connector_id=None, **kwargs):
        self.log_msg(f"Reception of a RemoteStartTransaction request for tag {id_tag}")
        return {"status": self.remote_start_stop_response}

    @after(Action.RemoteStartTransaction)
    def after_remote_start(self, id_tag, connector_id=None, **kwargs):
        if self.remote_start_stop_response != RemoteStartStopStatus.accepted:
            return
        cid = int(connector_id or 1)
        delay = self.remote_start_delay
        # time it takes the user to plug in
        self.log_msg(f"Simulating {delay} sec delay for user to plug in charger")
        self.scheduler.after(delay, lambda: self.start_transaction(id_tag, cid))

    @on(Action.RemoteStopTransaction)
    def on_remote_stop(self, transaction_id, **kwargs):
        self.log_msg(
            f"Reception of a RemoteStopTransaction request for transaction {transaction_id}"
        )
        return {"status": self.remote_start_stop_response}

    @after(Action.RemoteStopTransaction)
    def after_remote_stop(self, transaction_id, **kwargs):
        if self.remote_start_stop_response != RemoteStartStopStatus.accepted:
            return
        self.stop_transaction_with_id(int(transaction_id))

    @on(Action.TriggerMessage)
    def on_trigger_message(self, requested_message, connector_id=None, **kwargs):
        self.log_msg(f"Reception of a TriggerMessage request ({requested_message})")
        return {"status": TriggerMessageStatus.accepted}

    @after(Action.TriggerMessage)
    def after_trigger_message(self, requested_message, connector_id=None, **kwargs):
        self.trigger_message(requested_message, int(connector_id or 0))

    @on(Action.ChangeAvailability)
    def on_change_availability(self, connector_id, type, **kwargs):
        self.log_msg(
            f"Reception of a ChangeAvailability request (connector {connector_id} {type})"
        )
        return {"status": AvailabilityStatus.accepted}

    @after(Action.ChangeAvailability)
    def after_change_availability(self, connector_id, type, **kwargs):
        self.set_connector_availability(int(connector_id), type)

    @on(Action.UnlockConnector)
    def on_unlock_connector(self, connector_id=None, **kwargs):
        return {"status": UnlockStatus.unlocked}

    @on(Action.GetConfiguration)
    def on_get_configuration(self, key=None, **kwargs):
        self.log_msg(f"Reception of a GetConfiguration request ({key or 'all'})")
        requested = key or list(CONFIGURATION)
        return {
            "configuration_key": [
                {"key": k, "readonly": CONFIGURATION[k][0], "value": CONFIGURATION[k][1]}
                for k in requested
                if k in CONFIGURATION
            ],
            "unknown_key": [k for k in requested if k not in CONFIGURATION],
        }

    def trigger_message(self, requested_message: str, connector_id: int = 0) -> None:
        if requested_message == MessageTrigger.boot_notification:
            self.send_boot_notification()
        elif requested_message == MessageTrigger.heartbeat:
            self.send_heartbeat()
        elif requested_message == MessageTrigger.meter_values:
            self.send_meter_value(connector_id)
        elif requested_message == MessageTrigger.status_notification:
            self.send_status_notification(connector_id)
        elif requested_message in (
            MessageTrigger.diagnostics_status_notification,
            "DiagnosticStatusNotification",
            MessageTrigger.firmware_status_notification,
        ):
            pass
        else:
            self.log_msg(f"Requested Message not supported: {requested_message}")
