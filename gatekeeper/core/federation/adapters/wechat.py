"""WeChat Open Platform / Official Account login.

Deviations from RFC 6749: ``appid`` instead of ``client_id``, a mandatory
``#wechat_redirect`` fragment, token exchange over GET with the secret in
the query, and ``{errcode, errmsg}`` error bodies returned with HTTP 200.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, Type

from ..authorization import AuthorizationRequest
from ..client import ProviderHttpClient
from ..exceptions import ProviderError, TokenExchangeFailed, UserInfoFetchFailed
from ..providers import ProviderDescriptor
from ..token import AccessTokenResponse, AuthorizationCodeGrant

logger = logging.getLogger(__name__)

PROVIDERS = ("wechat_open", "wechat_mp")


def check_errcode(body: Dict[str, Any], error_cls: Type[ProviderError]) -> Dict[str, Any]:
    """Raise ``error_cls`` when a WeChat body carries a non-zero errcode."""
    errcode = body.get("errcode")
    if errcode not in (None, 0, "0"):
        errmsg = body.get("errmsg") or "unknown error"
        logger.warning("WeChat returned errcode %s: %s", errcode, errmsg)
        raise error_cls(f"WeChat returned errcode {errcode}: {errmsg}", str(errcode), errmsg)
    return body


class WeChatAdapter:
    def __init__(self, http: ProviderHttpClient):
        self.http = http

    def customize_authorization(self, request: AuthorizationRequest, descriptor: ProviderDescriptor) -> None:
        # WeChat rejects the request unless parameters arrive in this order
        request.parameters = [
            ("appid", descriptor.client_id),
            ("redirect_uri", request.redirect_uri),
            ("response_type", "code"),
            ("scope", ",".join(descriptor.scopes)),
            ("state", request.state),
        ]
        request.nonce = None
        request.code_verifier = None
        request.fragment = "wechat_redirect"

    def exchange_token(self, grant: AuthorizationCodeGrant) -> AccessTokenResponse:
        descriptor = grant.provider
        body = self.http.get_json(
            descriptor.token_uri,
            params={
                "appid": descriptor.client_id,
                "secret": descriptor.client_secret,
                "code": grant.code,
                "grant_type": "authorization_code",
            },
            error_cls=TokenExchangeFailed,
        )
        check_errcode(body, TokenExchangeFailed)
        if not body.get("access_token"):
            raise TokenExchangeFailed("WeChat token response has no access_token", "invalid_token_response")
        return AccessTokenResponse.from_token(body, default_scopes=descriptor.scopes)

    def fetch_attributes(self, token: AccessTokenResponse, descriptor: ProviderDescriptor) -> Dict[str, Any]:
        openid = token.additional_parameters.get("openid")
        if not openid:
            raise UserInfoFetchFailed("WeChat token response carried no openid", "missing_openid")
        body = self.http.get_json(
            descriptor.user_info_uri,
            params={
                "access_token": token.access_token,
                "openid": openid,
                "lang": descriptor.meta("lang", "zh_CN"),
            },
            error_cls=UserInfoFetchFailed,
        )
        return check_errcode(body, UserInfoFetchFailed)
