"""OCPP-J envelope encoding and decoding.

Frames are JSON arrays whose first element is the message type:

    [2, id, action, payload]          CALL
    [3, id, payload]                  CALLRESULT
    [4, id, errorCode(, errorDescription)]   CALLERROR
"""
import json
import random
import string

from ocpp.exceptions import FormatViolationError, ProtocolError
from ocpp.messages import Call, CallError, CallResult, MessageType

ID_LENGTH = 36
_ID_CHARS = string.ascii_letters + string.digits


def generate_id() -> str:
    """Random 36 character alphanumeric message id."""
    return "".join(random.choice(_ID_CHARS) for _ in range(ID_LENGTH))


def encode_call(unique_id: str, action: str, payload: dict) -> str:
    return Call(unique_id, action, payload).to_json()


def encode_result(unique_id: str, payload: dict) -> str:
    return CallResult(unique_id, payload).to_json()


def encode_error(unique_id: str, error_code: str, description: str = "") -> str:
    msg = [MessageType.CallError, unique_id, error_code]
    if description:
        msg.append(description)
    return json.dumps(msg, separators=(",", ":"))


def decode(frame: str):
    """Parse a frame into a Call, CallResult or CallError.

    A CALL without payload gets an empty payload, a CALLERROR without
    description an empty description.
    """
    try:
        msg = json.loads(frame)
    except json.JSONDecodeError:
        raise FormatViolationError(
            details={"cause": "Message is not valid JSON", "ocpp_message": frame}
        )

    if not isinstance(msg, list) or len(msg) < 3:
        raise ProtocolError(
            details={
                "cause": "OCPP message is not a JSON array of at least 3 elements",
                "ocpp_message": frame,
            }
        )

    message_type = msg[0]
    if message_type == MessageType.Call:
        payload = msg[3] if len(msg) > 3 and msg[3] is not None else {}
        return Call(msg[1], msg[2], payload)
    if message_type == MessageType.CallResult:
        return CallResult(msg[1], msg[2])
    if message_type == MessageType.CallError:
        description = msg[3] if len(msg) > 3 else ""
        details = msg[4] if len(msg) > 4 else {}
        return CallError(msg[1], msg[2], description, details)

    raise ProtocolError(
        details={"cause": f"MessageTypeId '{message_type}' isn't valid", "ocpp_message": frame}
    )
