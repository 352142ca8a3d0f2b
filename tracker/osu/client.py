"""osu! API (v1) client for looking up players by name."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional

import requests
from pydantic import BaseModel, ConfigDict, ValidationError

OSU_API_BASE_URL = "https://osu.ppy.sh/api"

# Index is the `m` parameter of the osu! API.
OSU_MODES = ("osu!standard", "osu!taiko", "osu!catch", "osu!mania")


class OsuApiError(Exception):
    """The osu! API could not be reached or returned something unusable."""


class OsuUserNotFound(OsuApiError):
    pass


class OsuUser(BaseModel):
    """Subset of a `get_user` entry. The API returns numbers as strings (or null)."""

    model_config = ConfigDict(extra="ignore")

    user_id: int
    username: str
    country: Optional[str] = None
    playcount: Optional[int] = None
    pp_raw: Optional[float] = None
    pp_rank: Optional[int] = None
    pp_country_rank: Optional[int] = None
    accuracy: Optional[float] = None
    level: Optional[float] = None


@dataclass(frozen=True)
class OsuConfig:
    api_key: Optional[str]
    base_url: str
    timeout_seconds: float


@lru_cache(maxsize=1)
def load_osu_config() -> OsuConfig:
    raw_timeout = (os.getenv("OSU_HTTP_TIMEOUT_SECONDS") or "").strip()
    try:
        timeout = float(raw_timeout) if raw_timeout else 10.0
    except ValueError:
        timeout = 10.0
    return OsuConfig(
        api_key=(os.getenv("OSU_API_KEY") or "").strip() or None,
        base_url=((os.getenv("OSU_API_BASE_URL") or "").strip() or OSU_API_BASE_URL).rstrip("/"),
        timeout_seconds=timeout if timeout > 0 else 10.0,
    )


def is_valid_mode(mode: int) -> bool:
    return 0 <= mode < len(OSU_MODES)


class OsuClient:
    def __init__(self, api_key: Optional[str], *, base_url: str = OSU_API_BASE_URL, timeout: float = 10.0):
        self._api_key = api_key
        self._base = base_url.rstrip("/")
        self._timeout = timeout

    @classmethod
    def from_config(cls, cfg: OsuConfig) -> "OsuClient":
        return cls(cfg.api_key, base_url=cfg.base_url, timeout=cfg.timeout_seconds)

    def get_user(self, username: str, mode: int) -> OsuUser:
        """
        Look up a player by name in a game mode.

        Raises:
            OsuUserNotFound: no player with that name
            OsuApiError: missing API key, transport error, or unexpected payload
        """
        if not self._api_key:
            raise OsuApiError("osu! API key not configured (OSU_API_KEY)")
        if not is_valid_mode(mode):
            raise ValueError(f"Invalid osu! mode: {mode}")

        params = {"k": self._api_key, "u": username, "m": str(mode), "type": "string"}
        try:
            r = requests.get(f"{self._base}/get_user", params=params, timeout=self._timeout)
            r.raise_for_status()
            data = r.json()
        except (requests.RequestException, ValueError) as e:
            # requests includes the URL (and so the API key) in some messages.
            raise OsuApiError(f"get_user failed: {type(e).__name__}") from e

        if not isinstance(data, list):
            raise OsuApiError("Invalid get_user response")
        if not data:
            raise OsuUserNotFound(f"No osu! player named {username!r}")
        try:
            users: List[OsuUser] = [OsuUser.model_validate(x) for x in data[:1]]
        except ValidationError as e:
            raise OsuApiError(f"Invalid get_user entry: {e.error_count()} error(s)") from e
        return users[0]
