# src/hedgebot/exchanges/bitget/rest.py
from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
import time
from typing import Any
from urllib.parse import urlencode

import requests

BASE_URL = "https://api.bitget.com"
OK_CODE = "00000"

PRODUCT_TYPES_V2 = {
    "umcbl": "USDT-FUTURES",
    "cmcbl": "COIN-FUTURES",
    "dmcbl": "USDC-FUTURES",
}

log = logging.getLogger("src.hedgebot.exchanges.bitget.rest")


def _ts_ms() -> str:
    return str(int(time.time() * 1000))


def product_type_v2(product_type: str | None = None, symbol: str | None = None) -> str:
    """umcbl/cmcbl/dmcbl (or a suffixed symbol) -> USDT-FUTURES/COIN-FUTURES/USDC-FUTURES."""
    if product_type:
        pt = str(product_type).strip()
        if pt.upper() in PRODUCT_TYPES_V2.values():
            return pt.upper()
        return PRODUCT_TYPES_V2.get(pt.lower(), "USDT-FUTURES")
    s = str(symbol or "").upper()
    for suffix, v2 in (("_UMCBL", "USDT-FUTURES"), ("_CMCBL", "COIN-FUTURES"), ("_DMCBL", "USDC-FUTURES")):
        if s.endswith(suffix):
            return v2
    return "USDT-FUTURES"


def symbol_v2(symbol: str) -> str:
    """v2 endpoints expect the bare symbol: BTCUSDT_UMCBL -> btcusdt."""
    s = str(symbol or "").strip()
    if "_" in s:
        s = s.split("_", 1)[0]
    return s.lower()


class BitgetAPIError(RuntimeError):
    def __init__(self, *, code: str, msg: str, method: str, path: str, http_status: int | None = None):
        self.code = str(code)
        self.msg = str(msg)
        self.http_status = http_status
        super().__init__(f"Bitget error {self.code} {method} {path}: {self.msg}")

    @property
    def is_not_found(self) -> bool:
        return self.code == "40404" or self.http_status == 404 or "NOT FOUND" in self.msg.upper()


class BitgetMixREST:
    """
    Bitget Mix (futures) v2 REST client, signed requests with retry/backoff for 429/5xx/network errors.
    """

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        passphrase: str = "",
        *,
        base_url: str = BASE_URL,
        timeout: float = 10.0,
        max_retries: int = 3,
        backoff_base: float = 1.5,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key or ""
        self.api_secret = (api_secret or "").encode("utf-8")
        self.passphrase = passphrase or ""

        self.timeout = float(timeout)
        self.max_retries = max(1, int(max_retries))
        self.backoff_base = float(backoff_base)

        self.sess = session or requests.Session()
        self.sess.headers.update({"Content-Type": "application/json", "locale": "en-US"})

        if not self.passphrase:
            log.warning("Bitget passphrase is empty; keys created with a passphrase will be rejected (40012)")

    # ---------------------------------------------------------------------
    # SIGN
    # ---------------------------------------------------------------------

    def sign(self, *, timestamp: str, method: str, request_path: str, body: str) -> str:
        """
        signature = base64(HMAC_SHA256(secret, timestamp + METHOD + requestPath + body))
        requestPath includes the query string for GET.
        """
        payload = f"{timestamp}{method.upper()}{request_path}{body}"
        digest = hmac.new(self.api_secret, payload.encode("utf-8"), hashlib.sha256).digest()
        return base64.b64encode(digest).decode("ascii")

    def _headers(self, *, method: str, request_path: str, body: str) -> dict[str, str]:
        ts = _ts_ms()
        return {
            "ACCESS-KEY": self.api_key,
            "ACCESS-PASSPHRASE": self.passphrase,
            "ACCESS-TIMESTAMP": ts,
            "ACCESS-SIGN": self.sign(timestamp=ts, method=method, request_path=request_path, body=body),
        }

    # ---------------------------------------------------------------------
    # CORE REQUEST (WITH BACKOFF)
    # ---------------------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
    ) -> Any:
        method = method.upper()
        clean = {k: v for k, v in (params or {}).items() if v not in (None, "")}
        request_path = f"{path}?{urlencode(clean)}" if clean else path
        payload = "" if method == "GET" else json.dumps(body or {}, separators=(",", ":"))
        url = f"{self.base_url}{request_path}"

        last_err: Exception | None = None

        for attempt in range(1, self.max_retries + 1):
            headers = self._headers(method=method, request_path=request_path, body=payload)
            try:
                r = self.sess.request(
                    method=method,
                    url=url,
                    data=payload or None,
                    headers=headers,
                    timeout=self.timeout,
                )
            except requests.RequestException as e:
                last_err = e
                sleep = self.backoff_base * attempt
                log.warning(
                    "Bitget network error (%s %s), retry %d/%d, sleep %.1fs | %r",
                    method, path, attempt, self.max_retries, sleep, e,
                )
                time.sleep(sleep)
                continue

            # --- RATE LIMIT / TEMP SERVER ERRORS ---
            if r.status_code == 429 or r.status_code >= 500:
                last_err = RuntimeError(f"HTTP {r.status_code}")
                sleep = self.backoff_base * attempt
                log.warning(
                    "Bitget HTTP %d (%s %s), retry %d/%d, sleep %.1fs",
                    r.status_code, method, path, attempt, self.max_retries, sleep,
                )
                time.sleep(sleep)
                continue

            try:
                data = r.json() if r.text else {}
            except ValueError:
                raise BitgetAPIError(
                    code=str(r.status_code), msg=r.text[:500], method=method, path=path, http_status=r.status_code,
                )

            code = str(data.get("code", "")) if isinstance(data, dict) else ""
            if r.status_code >= 400 or code != OK_CODE:
                raise BitgetAPIError(
                    code=code or str(r.status_code),
                    msg=str(data.get("msg") if isinstance(data, dict) else data),
                    method=method,
                    path=path,
                    http_status=r.status_code,
                )
            return data.get("data")

        raise RuntimeError(
            f"Bitget request failed after {self.max_retries} retries: {method} {path} | last_err={last_err!r}"
        )

    def _get(self, path: str, *, params: dict[str, Any] | None = None):
        return self._request("GET", path, params=params)

    def _post(self, path: str, *, body: dict[str, Any] | None = None):
        return self._request("POST", path, body=body)

    # ---------------------------------------------------------------------
    # API METHODS
    # ---------------------------------------------------------------------

    def accounts(self, *, product_type: str, margin_coin: str | None = None):
        params = {"productType": product_type_v2(product_type)}
        if margin_coin:
            params["marginCoin"] = margin_coin.upper()
        return self._get("/api/v2/mix/account/accounts", params=params)

    def set_leverage(self, *, symbol: str, margin_coin: str, leverage: int, hold_side: str):
        return self._post(
            "/api/v2/mix/account/set-leverage",
            body={
                "symbol": symbol_v2(symbol),
                "productType": product_type_v2(symbol=symbol),
                "marginCoin": margin_coin.upper(),
                "leverage": str(int(leverage)),
                "holdSide": hold_side,
            },
        )

    def set_margin_mode(self, *, symbol: str, margin_coin: str, margin_mode: str = "crossed"):
        return self._post(
            "/api/v2/mix/account/set-margin-mode",
            body={
                "symbol": symbol_v2(symbol),
                "productType": product_type_v2(symbol=symbol),
                "marginCoin": margin_coin.upper(),
                "marginMode": margin_mode,
            },
        )

    def place_order(
        self,
        *,
        symbol: str,
        margin_coin: str,
        size: str,
        side: str,
        order_type: str = "market",
        price: str | None = None,
        preset_take_profit: str | None = None,
        preset_stop_loss: str | None = None,
        margin_mode: str = "crossed",
    ):
        """
        side: open_long / open_short / close_long / close_short
        v2 wants side=buy|sell + tradeSide=open|close (hedge mode).
        """
        direction, _, leg = side.partition("_")
        body: dict[str, Any] = {
            "symbol": symbol_v2(symbol),
            "productType": product_type_v2(symbol=symbol),
            "marginCoin": margin_coin.upper(),
            "marginMode": margin_mode,
            "size": str(size),
            "side": "buy" if leg == "long" else "sell",
            "tradeSide": direction,
            "orderType": order_type,
            "force": "gtc",
        }
        if order_type == "limit":
            if not price or float(price) <= 0:
                raise ValueError("price is required for limit orders")
            body["price"] = str(price)
        if preset_take_profit and float(preset_take_profit) > 0:
            body["presetStopSurplusPrice"] = str(preset_take_profit)
        if preset_stop_loss and float(preset_stop_loss) > 0:
            body["presetStopLossPrice"] = str(preset_stop_loss)

        log.info(
            "[ORDER] %s %s size=%s type=%s margin=%s TP=%s SL=%s",
            body["symbol"], side, body["size"], order_type, margin_mode,
            body.get("presetStopSurplusPrice", "-"), body.get("presetStopLossPrice", "-"),
        )
        return self._post("/api/v2/mix/order/place-order", body=body)

    def close_position(self, *, symbol: str, margin_coin: str, hold_side: str, size: str | None = None):
        body = {
            "symbol": symbol_v2(symbol),
            "productType": product_type_v2(symbol=symbol),
            "marginCoin": margin_coin.upper(),
            "holdSide": hold_side,
        }
        if size is not None:
            body["size"] = str(size)
        return self._post("/api/v2/mix/order/close-position", body=body)

    def single_position(self, *, symbol: str, margin_coin: str):
        return self._get(
            "/api/v2/mix/position/single-position",
            params={
                "symbol": symbol_v2(symbol),
                "productType": product_type_v2(symbol=symbol),
                "marginCoin": margin_coin.upper(),
            },
        )

    def all_positions(self, *, product_type: str, margin_coin: str | None = None):
        params = {"productType": product_type_v2(product_type)}
        if margin_coin:
            params["marginCoin"] = margin_coin.upper()
        return self._get("/api/v2/mix/position/all-position", params=params)

    def contracts(self, *, product_type: str):
        params = {"productType": product_type_v2(product_type)}
        return self._get("/api/v2/mix/market/contracts", params=params)
