import argparse
from typing import Optional

import requests

API_BASE = "http://127.0.0.1:7071"
DEFAULT_IDTAG = "DEADBEEF"


def _post(path: str, params: Optional[dict] = None) -> requests.Response:
    url = f"{API_BASE}{path}"
    resp = requests.post(url, params=params, headers={"Connection": "close"}, timeout=15)
    print(f"POST {url} -> {resp.status_code} {resp.reason}")
    print(resp.text)
    return resp


def connect(url: Optional[str], cpid: Optional[str]) -> None:
    params = {}
    if url is not None:
        params["url"] = url
    if cpid is not None:
        params["cpid"] = cpid
    _post("/connect", params)


def start_charge(connector_id: int, id_tag: str) -> None:
    _post("/authorize", {"id_tag": id_tag})
    _post("/start", {"id_tag": id_tag, "connector_id": connector_id})


def stop_charge(id_tag: str, transaction_id: Optional[int]) -> None:
    params = {"id_tag": id_tag}
    if transaction_id is not None:
        params["transaction_id"] = transaction_id
    _post("/stop", params)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Drive the charge point simulator via its HTTP API")
    parser.add_argument("--api", default=API_BASE, help="simulator control API base URL")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_connect = sub.add_parser("connect", help="connect to the central system")
    p_connect.add_argument("--url")
    p_connect.add_argument("--cpid")

    sub.add_parser("disconnect", help="close the connection")

    p_start = sub.add_parser("start", help="authorize and start charging")
    p_start.add_argument("connectorId", type=int, nargs="?", default=1)
    p_start.add_argument("idTag", nargs="?", default=DEFAULT_IDTAG)

    p_stop = sub.add_parser("stop", help="stop charging")
    p_stop.add_argument("idTag", nargs="?", default=DEFAULT_IDTAG)
    p_stop.add_argument("--transaction-id", type=int)

    p_meter = sub.add_parser("meter", help="set the meter value and report it")
    p_meter.add_argument("value", type=int)

    return parser.parse_args()


def main() -> None:
    global API_BASE
    args = parse_args()
    API_BASE = args.api.rstrip("/")
    if args.cmd == "connect":
        connect(args.url, args.cpid)
    elif args.cmd == "disconnect":
        _post("/disconnect")
    elif args.cmd == "start":
        start_charge(args.connectorId, args.idTag)
    elif args.cmd == "stop":
        stop_charge(args.idTag, args.transaction_id)
    elif args.cmd == "meter":
        _post(f"/meter/{args.value}", {"update_server": "true"})


if __name__ == "__main__":
    main()
