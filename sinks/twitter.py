"""
Twitter sink: posts the message as a tweet through the v2 API.

Two ways to authenticate:
  - OAuth 1.0a user context with TWITTER_APP_KEY, TWITTER_APP_SECRET,
    TWITTER_ACCESS_TOKEN and TWITTER_ACCESS_SECRET (requests signed with HMAC-SHA1)
  - OAuth 2.0 user-context bearer token in TWITTER_BEARER_TOKEN
OAuth 1.0a wins when all four of its credentials are present.
"""
from __future__ import annotations

import asyncio
import base64
import hashlib
import hmac
import logging
import os
import secrets
import time
from urllib.parse import quote

import aiohttp

from errors import SinkDispatchFailure
from models import NotificationPayload
from sinks.base import NotificationSink

log = logging.getLogger(__name__)

TWEETS_URL = "https://api.twitter.com/2/tweets"


def _pct(value: str) -> str:
    """RFC 3986 percent-encoding as OAuth 1.0a requires."""
    return quote(str(value), safe="~")


def oauth1_signature(
    method: str,
    url: str,
    params: dict[str, str],
    consumer_secret: str,
    token_secret: str,
) -> str:
    """HMAC-SHA1 signature over the OAuth base string. `params` holds oauth_* plus any query/form params."""
    encoded = sorted((_pct(k), _pct(v)) for k, v in params.items())
    param_string = "&".join(f"{k}={v}" for k, v in encoded)
    base = "&".join([method.upper(), _pct(url), _pct(param_string)])
    key = f"{_pct(consumer_secret)}&{_pct(token_secret)}"
    digest = hmac.new(key.encode(), base.encode(), hashlib.sha1).digest()
    return base64.b64encode(digest).decode()


def oauth1_header(
    method: str,
    url: str,
    consumer_key: str,
    consumer_secret: str,
    token: str,
    token_secret: str,
    nonce: str | None = None,
    timestamp: int | None = None,
) -> str:
    """Authorization header value for a request whose body is JSON (so not part of the signature)."""
    oauth = {
        "oauth_consumer_key": consumer_key,
        "oauth_nonce": nonce or secrets.token_hex(16),
        "oauth_signature_method": "HMAC-SHA1",
        "oauth_timestamp": str(timestamp if timestamp is not None else int(time.time())),
        "oauth_token": token,
        "oauth_version": "1.0",
    }
    oauth["oauth_signature"] = oauth1_signature(method, url, oauth, consumer_secret, token_secret)
    return "OAuth " + ", ".join(f'{_pct(k)}="{_pct(v)}"' for k, v in sorted(oauth.items()))


class TwitterSink(NotificationSink):
    name = "twitter"

    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        app_key: str | None = None,
        app_secret: str | None = None,
        access_token: str | None = None,
        access_secret: str | None = None,
        bearer_token: str | None = None,
        url: str | None = None,
    ) -> None:
        self._session = session
        self._app_key = app_key or os.environ.get("TWITTER_APP_KEY", "")
        self._app_secret = app_secret or os.environ.get("TWITTER_APP_SECRET", "")
        self._access_token = access_token or os.environ.get("TWITTER_ACCESS_TOKEN", "")
        self._access_secret = access_secret or os.environ.get("TWITTER_ACCESS_SECRET", "")
        self._bearer = bearer_token or os.environ.get("TWITTER_BEARER_TOKEN", "")
        self._url = url or os.environ.get("TWITTER_API_URL", TWEETS_URL)
        if not self.uses_oauth1 and not self._bearer:
            log.warning("No Twitter credentials set; every tweet will fail")

    @property
    def uses_oauth1(self) -> bool:
        return all((self._app_key, self._app_secret, self._access_token, self._access_secret))

    def _authorization(self) -> str:
        if self.uses_oauth1:
            return oauth1_header(
                "POST", self._url, self._app_key, self._app_secret, self._access_token, self._access_secret
            )
        if self._bearer:
            return f"Bearer {self._bearer}"
        raise SinkDispatchFailure(self.name, "no credentials configured")

    async def push(self, payload: NotificationPayload) -> None:
        headers = {"Authorization": self._authorization()}
        try:
            async with self._session.post(self._url, json={"text": payload.message}, headers=headers) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    raise SinkDispatchFailure(self.name, f"HTTP {resp.status}: {body[:200]}")
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise SinkDispatchFailure(self.name, str(exc) or type(exc).__name__) from exc
        tweet_id = (data or {}).get("data", {}).get("id")
        log.info("Tweeted %s for %s", tweet_id, payload.source_name)
