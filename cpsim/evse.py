import asyncio
import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException

from .charge_point import ChargePoint
from .config import *
from .store import JsonFileStore, MemoryStore

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s | %(levelname)s | %(message)s")

app = FastAPI(title="OCPP Charge Point Simulator Control")

# session scoped state in memory, availability survives restarts
cp = ChargePoint(CPID, session=MemoryStore(), durable=JsonFileStore(STORE_PATH))


def _connector(connector_id: int) -> int:
    if connector_id not in cp.connector_ids():
        raise HTTPException(status_code=404, detail=f"unknown connector {connector_id}")
    return connector_id


@app.get("/health")
async def health():
    return {"ok": True}


@app.get("/status")
async def status():
    return cp.snapshot()


# -------- connection --------
@app.post("/connect")
async def connect(url: str = CSMS_URL, cpid: Optional[str] = None):
    cp.connect(url, cpid)
    return {"ok": True, "status": cp.status}


@app.post("/disconnect")
async def disconnect():
    cp.disconnect()
    return {"ok": True, "status": cp.status}


# -------- charging session --------
@app.post("/authorize")
async def authorize(id_tag: str):
    cp.authorize(id_tag)
    return {"ok": True}


@app.post("/start")
async def start(id_tag: str, connector_id: int = 1, reservation_id: int = 0):
    cp.start_transaction(id_tag, _connector(connector_id), reservation_id)
    return {"ok": True, "status": cp.status}


@app.post("/stop")
async def stop(id_tag: str = "DEADBEEF", transaction_id: Optional[int] = None):
    if transaction_id is None:
        transaction_id = cp.state.transaction_id
    if transaction_id is None:
        return {"ok": False, "error": "no active transaction"}
    cp.stop_transaction_with_id(transaction_id, id_tag)
    return {"ok": True, "status": cp.status}


@app.post("/meter/{value}")
async def meter(value: int, update_server: bool = False):
    cp.set_meter_value(value, update_server)
    return {"ok": True, "meter_value": cp.meter_value()}


@app.post("/heartbeat")
async def heartbeat():
    cp.send_heartbeat()
    return {"ok": True}


@app.post("/connectors/{connector_id}/status/{new_status}")
async def connector_status(connector_id: int, new_status: str, notify: bool = True):
    cp.set_connector_status(_connector(connector_id), new_status, notify)
    return {"ok": True, "connector": connector_id, "status": cp.connector_status(connector_id)}


@app.post("/settings")
async def settings(
    remote_start_stop_response: Optional[str] = None,
    remote_start_delay: Optional[float] = None,
):
    if remote_start_stop_response is not None:
        if remote_start_stop_response not in ("Accepted", "Rejected"):
            raise HTTPException(status_code=422, detail="expected Accepted or Rejected")
        cp.remote_start_stop_response = remote_start_stop_response
    if remote_start_delay is not None:
        cp.remote_start_delay = remote_start_delay
    return {
        "ok": True,
        "remote_start_stop_response": cp.remote_start_stop_response,
        "remote_start_delay": cp.remote_start_delay,
    }


async def main():
    # run the engine dispatch loop and HTTP API together
    server = uvicorn.Server(uvicorn.Config(app, host="0.0.0.0", port=HTTP_PORT, loop="asyncio", log_level="info"))
    engine_task = asyncio.create_task(cp.run())
    if AUTO_CONNECT:
        cp.connect(CSMS_URL, CPID)
    await server.serve()
    cp.disconnect()
    engine_task.cancel()


if __name__ == "__main__":
    asyncio.run(main())
