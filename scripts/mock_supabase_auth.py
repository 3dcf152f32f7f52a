#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import parse_qs, urlsplit

# token -> (user id, role labels)
MOCK_USERS: dict[str, tuple[str, list[str]]] = {
    "planeacion-token": ("11111111-1111-1111-1111-111111111111", ["PLANEACION"]),
    "salud-token": ("22222222-2222-2222-2222-222222222222", ["ATENCION_SALUD"]),
    "rh-token": ("33333333-3333-3333-3333-333333333333", ["RH"]),
    "coordinacion-token": ("44444444-4444-4444-4444-444444444444", ["COORD_ESTATAL"]),
    "validador-token": ("55555555-5555-5555-5555-555555555555", ["VALIDADOR"]),
    "dg-token": ("66666666-6666-6666-6666-666666666666", ["DG"]),
}


def _user_payload_for_token(token: str) -> dict[str, object] | None:
    entry = MOCK_USERS.get(token)
    if entry is None:
        return None
    user_id, _ = entry
    return {
        "id": user_id,
        "email": f"{token.removesuffix('-token')}@example.gob.mx",
        "app_metadata": {},
        "user_metadata": {},
    }


def _roles_payload_for_user(user_id: str) -> list[dict[str, object]]:
    for candidate_id, labels in MOCK_USERS.values():
        if candidate_id == user_id:
            return [{"roles": {"name": label}} for label in labels]
    return []


class MockSupabaseHandler(BaseHTTPRequestHandler):
    server_version = "MockSupabase/1.0"

    def do_GET(self) -> None:  # noqa: N802 - stdlib handler signature
        url = urlsplit(self.path)
        if url.path == "/healthz":
            self._write_json(HTTPStatus.OK, {"status": "ok"})
            return

        if url.path not in {"/auth/v1/user", "/rest/v1/user_roles"}:
            self._write_json(HTTPStatus.NOT_FOUND, {"detail": "not found"})
            return

        authorization = self.headers.get("Authorization", "")
        if not authorization.lower().startswith("bearer "):
            self._write_json(HTTPStatus.UNAUTHORIZED, {"detail": "missing bearer token"})
            return

        token = authorization.split(" ", maxsplit=1)[1].strip()
        user = _user_payload_for_token(token)
        if user is None:
            self._write_json(HTTPStatus.UNAUTHORIZED, {"detail": "invalid token"})
            return

        if url.path == "/auth/v1/user":
            self._write_json(HTTPStatus.OK, user)
            return

        user_filter = parse_qs(url.query).get("user_id", [""])[0]
        user_id = user_filter.removeprefix("eq.")
        self._write_json(HTTPStatus.OK, _roles_payload_for_user(user_id))

    def log_message(self, _: str, *args: object) -> None:
        # Keep logs terse for test runs.
        if args:
            print("mock-supabase:", *args)

    def _write_json(self, status: HTTPStatus, payload: object) -> None:
        raw = json.dumps(payload).encode("utf-8")
        self.send_response(status.value)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(raw)))
        self.end_headers()
        self.wfile.write(raw)


def main() -> None:
    parser = argparse.ArgumentParser(description="Mock Supabase /auth/v1/user and /rest/v1/user_roles endpoints.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=54321)
    args = parser.parse_args()

    server = ThreadingHTTPServer((args.host, args.port), MockSupabaseHandler)
    print(f"mock-supabase listening on http://{args.host}:{args.port}", flush=True)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()


if __name__ == "__main__":
    main()
