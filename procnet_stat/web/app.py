from __future__ import annotations
from flask import Flask, Response, current_app
import json as stdjson  # <- always available

try:
    import orjson as _oj
    def dumps(obj): return _oj.dumps(obj).decode()
except Exception:
    _oj = None
    def dumps(obj): return stdjson.dumps(obj)

from ..config import CFG
from ..models import Protocol


def create_app(cfg: CFG, snap) -> Flask:
    app = Flask(__name__)

    @app.get("/")
    def index():
        with snap.lock:
            if not snap.cycles:
                current_app.logger.info("table requested before first cycle")
            return Response(snap.text, mimetype="text/plain")

    @app.get("/api/sockets")
    def api_sockets():
        with snap.lock:
            records = list(snap.records)
        return Response(dumps(records), mimetype="application/json")

    @app.get("/api/sockets/<protocol>")
    def api_sockets_for(protocol):
        try:
            wanted = Protocol(protocol)
        except ValueError:
            return Response(dumps({"error": f"unknown protocol: {protocol}"}),
                            status=404, mimetype="application/json")
        with snap.lock:
            records = [r for r in snap.records if r["protocol"] == wanted.value]
        return Response(dumps(records), mimetype="application/json")

    @app.get("/api/status")
    def api_status():
        with snap.lock:
            data = snap.status()
        data["mode"] = cfg.mode.value
        data["interval"] = cfg.interval
        return Response(dumps(data), mimetype="application/json")

    return app
