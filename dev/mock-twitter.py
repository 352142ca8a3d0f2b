#!/usr/bin/env python3
"""Mock Twitter OAuth 1.0a + verify_credentials server for local development.

Point the tracker at it with TWITTER_API_BASE_URL=http://localhost:19081 and any
TWITTER_CONSUMER_KEY/SECRET. Signatures are not checked.
"""

import secrets
import sys
from urllib.parse import unquote, urlencode

from flask import Flask, jsonify, redirect, request

app = Flask(__name__)

# request token -> (secret, callback)
_pending = {}


@app.route("/oauth/request_token", methods=["POST"])
def request_token():
    """Issue a request token, remembering the oauth_callback from the Authorization header."""
    auth = request.headers.get("Authorization", "")
    callback = ""
    for part in auth.replace("OAuth ", "").split(","):
        k, _, v = part.strip().partition("=")
        if k == "oauth_callback":
            callback = unquote(v.strip('"'))
    token = secrets.token_hex(8)
    secret = secrets.token_hex(16)
    _pending[token] = (secret, callback)
    return urlencode({"oauth_token": token, "oauth_token_secret": secret, "oauth_callback_confirmed": "true"})


@app.route("/oauth/authenticate")
def authenticate():
    """Pretend the user approved the app and bounce straight back."""
    token = request.args.get("oauth_token", "")
    if token not in _pending:
        return "unknown oauth_token", 400
    _, callback = _pending[token]
    return redirect(callback + "?" + urlencode({"oauth_token": token, "oauth_verifier": "mock-verifier"}))


@app.route("/oauth/access_token", methods=["POST"])
def access_token():
    return urlencode(
        {
            "oauth_token": "1234-" + secrets.token_hex(8),
            "oauth_token_secret": secrets.token_hex(16),
            "user_id": "1234",
            "screen_name": "mock_player",
        }
    )


@app.route("/1.1/account/verify_credentials.json")
def verify_credentials():
    return jsonify(
        {
            "id": 1234,
            "id_str": "1234",
            "screen_name": "mock_player",
            "name": "Mock Player",
            "profile_image_url_https": "https://example.invalid/avatar.png",
        }
    )


@app.route("/healthz")
def health():
    """Health check endpoint."""
    return jsonify({"status": "ok"})


if __name__ == "__main__":
    print("Mock Twitter starting on http://0.0.0.0:19081", file=sys.stderr)
    app.run(host="0.0.0.0", port=19081, debug=False)
