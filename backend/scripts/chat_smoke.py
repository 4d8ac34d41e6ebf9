"""End-to-end smoke test for the ride chat WebSocket.

Prerequisites:
1. `python manage.py runserver` (or daphne) must be running.
2. Install dependencies once: `python -m pip install requests websocket-client`.

The script will:
- Ensure a demo host and rider exist (auto-register if missing).
- Log them in via the REST API; the host publishes a ride.
- The rider joins with the ride's join code.
- Open the rider's chat WebSocket, wait for the history frame.
- Post a message as the host via REST and wait for the live WS payload.
"""

from __future__ import annotations

import json
import os
import queue
import threading
from datetime import datetime, timedelta, timezone
from typing import Dict

import requests
import websocket  # type: ignore

BASE_URL = os.environ.get("RIDESHARE_BASE_URL", "http://127.0.0.1:8000")
API_ROOT = f"{BASE_URL}/api"
RIDES_API = f"{API_ROOT}/rides"
AUTH_API = f"{API_ROOT}/auth"

HOST_CREDS = {
    "username": "ws_demo_host",
    "password": "demo12345",
    "gender": "female",
}

RIDER_CREDS = {
    "username": "ws_demo_rider",
    "password": "demo12345",
    "gender": "male",
}


def _login_or_register(session: requests.Session, payload: Dict) -> Dict:
    login_resp = session.post(
        f"{AUTH_API}/login/",
        json={"username": payload["username"], "password": payload["password"]},
        timeout=10,
    )

    if login_resp.status_code != 200:
        register_body = {
            "username": payload["username"],
            "email": f"{payload['username']}@example.com",
            "password": payload["password"],
            "gender": payload["gender"],
        }
        reg_resp = session.post(f"{AUTH_API}/register/", json=register_body, timeout=10)
        reg_resp.raise_for_status()
        login_resp = session.post(
            f"{AUTH_API}/login/",
            json={"username": payload["username"], "password": payload["password"]},
            timeout=10,
        )

    login_resp.raise_for_status()
    data = login_resp.json()
    token = data["tokens"]["access"]
    session.headers.update({"Authorization": f"Bearer {token}"})
    session.access_token = token  # type: ignore[attr-defined]
    return data["user"]


def _create_ride(host_session: requests.Session) -> Dict:
    body = {
        "vehicle_type": "car",
        "pickup_name": "Campus Gate 1",
        "destination_name": "Bashundhara R/A",
        "departure_time": (datetime.now(timezone.utc) + timedelta(hours=1)).isoformat(),
        "total_fare": "300.00",
    }
    resp = host_session.post(f"{RIDES_API}/", json=body, timeout=10)
    resp.raise_for_status()
    ride = resp.json()
    print(f"[HTTP] Ride #{ride['id']} published, join code {ride['join_code']}")
    return ride


def _open_chat_socket(token: str, ride_id: int, ready_evt: threading.Event, queue_out: queue.Queue) -> None:
    ws_url = BASE_URL.replace("http", "ws") + f"/ws/rides/{ride_id}/chat/?token={token}"

    def on_message(ws, message):  # type: ignore[no-untyped-def]
        payload = json.loads(message)
        print(f"[WS] Received payload: {payload}")
        if payload.get("type") == "history":
            ready_evt.set()
        elif payload.get("type") == "chat_message":
            queue_out.put(payload)
            ws.close()

    def on_error(ws, error):  # type: ignore[no-untyped-def]
        print(f"[WS] Error: {error}")
        ready_evt.set()

    def on_close(_ws, *_):  # type: ignore[no-untyped-def]
        print("[WS] Connection closed")

    ws_app = websocket.WebSocketApp(
        ws_url,
        on_message=on_message,
        on_error=on_error,
        on_close=on_close,
    )

    ws_app.run_forever()


def main() -> None:
    host_session = requests.Session()
    rider_session = requests.Session()

    print("[HTTP] Logging in / registering demo accounts ...")
    host = _login_or_register(host_session, HOST_CREDS)
    rider = _login_or_register(rider_session, RIDER_CREDS)
    print(f"[HTTP] Host #{host['id']} + Rider #{rider['id']} ready")

    ride = _create_ride(host_session)
    join_resp = rider_session.post(
        f"{RIDES_API}/join-by-code/", json={"code": ride["join_code"]}, timeout=10
    )
    join_resp.raise_for_status()
    print(f"[HTTP] Rider joined: {join_resp.json()['message']}")

    ready_evt = threading.Event()
    message_queue: queue.Queue = queue.Queue()
    ws_thread = threading.Thread(
        target=_open_chat_socket,
        args=(rider_session.access_token, ride["id"], ready_evt, message_queue),  # type: ignore[attr-defined]
        daemon=True,
    )
    ws_thread.start()

    if not ready_evt.wait(timeout=5):
        raise TimeoutError("Chat WebSocket did not deliver history within 5 seconds")

    resp = host_session.post(
        f"{RIDES_API}/{ride['id']}/messages/", json={"text": "Meet at the gate in 10"}, timeout=10
    )
    resp.raise_for_status()

    try:
        payload = message_queue.get(timeout=30)
        message = payload.get("message", {})
        print(
            "[RESULT] Rider received message",
            message.get("id"),
            "sequence=",
            message.get("sequence"),
        )
    except queue.Empty:
        raise TimeoutError("Chat WebSocket did not receive the message within 30 seconds")

    print("[DONE] End-to-end chat check completed.")


if __name__ == "__main__":
    main()
