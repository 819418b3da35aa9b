import os

# charge point id is appended verbatim, keep the trailing slash
CSMS_URL = os.getenv("CSMS_URL", "ws://127.0.0.1:9000/ocpp/")
CPID = os.getenv("CPID", "TestCP01")
CONNECTORS = int(os.getenv("CONNECTORS", "2"))
AUTO_CONNECT = os.getenv("AUTO_CONNECT", "0") == "1"

# "Accepted" or "Rejected"
REMOTE_START_STOP_RESPONSE = os.getenv("REMOTE_START_STOP_RESPONSE", "Accepted")
REMOTE_START_DELAY_SEC = float(os.getenv("REMOTE_START_DELAY_SEC", "0"))

CHARGE_POINT_VENDOR = os.getenv("CHARGE_POINT_VENDOR", "ocpp-cp-simulator")
CHARGE_POINT_MODEL = os.getenv("CHARGE_POINT_MODEL", "PYTHON SIMULATOR")
CHARGE_POINT_SERIAL = os.getenv("CHARGE_POINT_SERIAL", "TEST_00000001")
FIRMWARE_VERSION = os.getenv("FIRMWARE_VERSION", "1.0.0")

STORE_PATH = os.getenv("STORE_PATH", "cpsim_store.json")
HTTP_PORT = int(os.getenv("HTTP_PORT", "7071"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
