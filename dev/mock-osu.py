#!/usr/bin/env python3
"""Mock osu! API (v1) server for local development."""

import sys

from flask import Flask, jsonify, request

app = Flask(__name__)

_PLAYERS = {
    "cookiezi": {"user_id": "124493", "username": "Cookiezi", "country": "KR"},
    "mock_player": {"user_id": "1234", "username": "mock_player", "country": "US"},
}


@app.route("/api/get_user")
def get_user():
    """Return a one-element list for known players, [] otherwise (like the real API)."""
    if not request.args.get("k"):
        return jsonify({"error": "Please provide a valid API key."}), 401
    player = _PLAYERS.get((request.args.get("u") or "").lower())
    if player is None:
        return jsonify([])
    return jsonify(
        [
            dict(
                player,
                playcount="1000",
                pp_raw="1234.5",
                pp_rank="5000",
                pp_country_rank="100",
                accuracy="98.76",
                level="100.5",
            )
        ]
    )


@app.route("/healthz")
def health():
    """Health check endpoint."""
    return jsonify({"status": "ok"})


if __name__ == "__main__":
    print("Mock osu! API starting on http://0.0.0.0:19082", file=sys.stderr)
    app.run(host="0.0.0.0", port=19082, debug=False)
