
# app/gateway/daraja.py
from __future__ import annotations

import base64
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import httpx

from app.errors import GatewayUnavailable
from app.gateway.base import StkPushRequest, StkPushResult
from app.gateway.config import DarajaConfig
from app.gateway.http import HttpClient, is_retryable_http

logger = logging.getLogger("pushpay.gateway")

# Daraja validates the STK timestamp against East Africa Time (UTC+3, no DST)
_EAT = timezone(timedelta(hours=3), "EAT")


def stk_timestamp(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(_EAT)
    if now.tzinfo is not None:
        now = now.astimezone(_EAT)
    return now.strftime("%Y%m%d%H%M%S")


def stk_password(shortcode: str, passkey: str, timestamp: str) -> str:
    return base64.b64encode(f"{shortcode}{passkey}{timestamp}".encode()).decode()


class DarajaGateway:
    name = "MPESA_DARAJA"

    def __init__(
        self,
        cfg: DarajaConfig,
        http: Optional[HttpClient] = None,
        *,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.cfg = cfg
        self.http = http or HttpClient(timeout_s=cfg.timeout_s)
        self._monotonic = monotonic
        self._token: Optional[str] = None
        self._token_exp: float = 0.0

    def stk_push(self, request: StkPushRequest) -> StkPushResult:
        token = self._get_token()
        timestamp = stk_timestamp()

        body = {
            "BusinessShortCode": self.cfg.shortcode,
            "Password": stk_password(self.cfg.shortcode, self.cfg.passkey, timestamp),
            "Timestamp": timestamp,
            "TransactionType": self.cfg.transaction_type,
            "Amount": int(request.amount),
            "PartyA": request.phone,
            "PartyB": self.cfg.shortcode,
            "PhoneNumber": request.phone,
            "CallBackURL": self.cfg.callback_url,
            "AccountReference": request.account_reference,
            "TransactionDesc": request.description,
        }
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

        try:
            resp = self.http.post(
                f"{self.cfg.base_url}/mpesa/stkpush/v1/processrequest",
                headers=headers,
                json_body=body,
            )
        except httpx.TimeoutException as exc:
            raise GatewayUnavailable("Gateway timeout") from exc
        except httpx.HTTPError as exc:
            raise GatewayUnavailable(f"Gateway error: {type(exc).__name__}") from exc

        data = resp.json or {}
        error = data.get("errorMessage") or data.get("errorCode")
        if resp.status_code not in (200, 201) or error:
            if resp.status_code == 401:
                # token may have been revoked early
                self._token = None
            message = error or f"STK request failed (HTTP {resp.status_code})"
            logger.warning(
                "stk_push_rejected status=%s retryable=%s error=%s",
                resp.status_code,
                is_retryable_http(resp.status_code),
                message,
            )
            raise GatewayUnavailable(str(message))

        response_code = data.get("ResponseCode")
        if response_code is not None and str(response_code) != "0":
            message = data.get("ResponseDescription") or f"STK request rejected (ResponseCode {response_code})"
            logger.warning("stk_push_rejected response_code=%s", response_code)
            raise GatewayUnavailable(str(message))

        checkout_id = str(data.get("CheckoutRequestID") or "").strip()
        if not checkout_id:
            raise GatewayUnavailable("Gateway response missing CheckoutRequestID")

        return StkPushResult(
            checkout_request_id=checkout_id,
            merchant_request_id=str(data.get("MerchantRequestID") or ""),
            customer_message=data.get("CustomerMessage"),
            response=data,
        )

    def _get_token(self) -> str:
        now = self._monotonic()
        if self._token and now < (self._token_exp - 30):
            return self._token

        try:
            resp = self.http.get(
                f"{self.cfg.base_url}/oauth/v1/generate",
                params={"grant_type": "client_credentials"},
                auth=(self.cfg.consumer_key, self.cfg.consumer_secret),
            )
        except httpx.TimeoutException as exc:
            raise GatewayUnavailable("Gateway timeout (oauth)") from exc
        except httpx.HTTPError as exc:
            raise GatewayUnavailable(f"Gateway error (oauth): {type(exc).__name__}") from exc

        if resp.status_code == 200 and isinstance(resp.json, dict) and resp.json.get("access_token"):
            self._token = resp.json["access_token"]
            expires_in = int(resp.json.get("expires_in") or 3599)
            self._token_exp = now + expires_in
            return self._token

        logger.warning("oauth_token_failed status=%s", resp.status_code)
        raise GatewayUnavailable(f"OAuth token request failed (HTTP {resp.status_code})")
