import pytest
import requests
from authlib.integrations.base_client import OAuthError

from gatekeeper.core.federation import (
    AppTokenCache,
    AuthorizationCodeGrant,
    ProviderHttpClient,
    ProviderRegistry,
    TokenExchangeBroker,
    TokenExchangeFailed,
    build_default_customizers,
)

FEISHU_APP_TOKEN_URI = "https://open.feishu.cn/open-apis/auth/v3/app_access_token/internal"
FEISHU_TOKEN_URI = "https://open.feishu.cn/open-apis/authen/v1/oidc/access_token"
WECHAT_TOKEN_URI = "https://api.weixin.qq.com/sns/oauth2/access_token"
WORK_GETTOKEN_URI = "https://qyapi.weixin.qq.com/cgi-bin/gettoken"
WORK_LOGIN_URI = "https://qyapi.weixin.qq.com/cgi-bin/auth/getuserinfo"


class _FakeSession:
    """Records how the default path drives Authlib's OAuth2Session."""

    instances = []

    def __init__(self, result=None, error=None, **kwargs):
        self.kwargs = kwargs
        self.result = result
        self.error = error
        self.fetch_calls = []
        self.closed = False
        _FakeSession.instances.append(self)

    def fetch_token(self, url, **kwargs):
        self.fetch_calls.append((url, kwargs))
        if self.error is not None:
            raise self.error
        return self.result

    def close(self):
        self.closed = True


def _factory(result=None, error=None):
    _FakeSession.instances = []

    def build(**kwargs):
        return _FakeSession(result=result, error=error, **kwargs)

    return build


@pytest.fixture()
def providers():
    return ProviderRegistry.from_settings({
        "github": {
            "client_id": "gh",
            "client_secret": "gh-secret",
            "authorization_uri": "https://github.com/login/oauth/authorize",
            "token_uri": "https://github.com/login/oauth/access_token",
            "scopes": ["read:user"],
            "token_endpoint_auth_method": "client_secret_post",
        },
        "wechat_open": {"client_id": "wx123", "client_secret": "wx-secret"},
        "feishu": {"client_id": "cli_x", "client_secret": "feishu-secret"},
        "wechat_work": {"client_id": "corp1", "client_secret": "corp-secret"},
    })


@pytest.fixture()
def token_customizers(fake_redis):
    return build_default_customizers(ProviderHttpClient(), AppTokenCache(fake_redis)).token


def _grant(providers, registration_id, code="auth-code", verifier=None):
    return AuthorizationCodeGrant(
        provider=providers.get(registration_id),
        code=code,
        redirect_uri=f"https://sso.example.com/login/oauth2/code/{registration_id}",
        code_verifier=verifier,
    )


# ── default path ─────────────────────────────────────────────────────────────
def test_default_path_uses_oauth2_session(providers, token_customizers):
    factory = _factory(result={"access_token": "gho_1", "token_type": "bearer", "expires_in": 3600})
    broker = TokenExchangeBroker(token_customizers, timeout=3, session_factory=factory)

    response = broker.exchange(_grant(providers, "github", verifier="v" * 43))

    session = _FakeSession.instances[0]
    assert session.kwargs["client_id"] == "gh"
    assert session.kwargs["token_endpoint_auth_method"] == "client_secret_post"
    url, kwargs = session.fetch_calls[0]
    assert url == "https://github.com/login/oauth/access_token"
    assert kwargs["code"] == "auth-code"
    assert kwargs["code_verifier"] == "v" * 43
    assert kwargs["timeout"] == 3
    assert session.closed
    assert response.access_token == "gho_1"
    assert response.token_type == "bearer"
    assert response.expires_in == 3600
    assert response.scope == frozenset({"read:user"})


def test_default_path_oauth_error(providers):
    factory = _factory(error=OAuthError(error="invalid_grant", description="code expired"))
    broker = TokenExchangeBroker(session_factory=factory)

    with pytest.raises(TokenExchangeFailed) as excinfo:
        broker.exchange(_grant(providers, "github"))

    assert excinfo.value.provider_error_code == "invalid_grant"
    assert excinfo.value.provider_error_message == "code expired"
    assert excinfo.value.registration_id == "github"


def test_default_path_transport_error(providers):
    broker = TokenExchangeBroker(session_factory=_factory(error=requests.ConnectionError("refused")))

    with pytest.raises(TokenExchangeFailed) as excinfo:
        broker.exchange(_grant(providers, "github"))
    assert excinfo.value.provider_error_code == "transport_error"


def test_default_path_missing_access_token(providers):
    broker = TokenExchangeBroker(session_factory=_factory(result={"token_type": "bearer"}))

    with pytest.raises(TokenExchangeFailed):
        broker.exchange(_grant(providers, "github"))


# ── WeChat ───────────────────────────────────────────────────────────────────
def test_wechat_exchange_is_get_with_secret(providers, token_customizers, http_stub):
    http_stub.add("GET", WECHAT_TOKEN_URI, {
        "access_token": "wx-at", "expires_in": 7200, "refresh_token": "wx-rt",
        "openid": "o-123", "scope": "snsapi_login", "unionid": "u-456",
    })
    broker = TokenExchangeBroker(token_customizers, session_factory=_factory())

    response = broker.exchange(_grant(providers, "wechat_open"))

    call = http_stub.calls_to(WECHAT_TOKEN_URI)[0]
    assert call["params"] == {
        "appid": "wx123", "secret": "wx-secret", "code": "auth-code", "grant_type": "authorization_code",
    }
    assert _FakeSession.instances == []
    assert response.access_token == "wx-at"
    assert response.token_type == "Bearer"
    assert response.expires_in == 7200
    assert response.scope == frozenset({"snsapi_login"})
    assert response.refresh_token == "wx-rt"
    assert response.additional_parameters == {"openid": "o-123", "unionid": "u-456"}


def test_wechat_errcode_is_failure(providers, token_customizers, http_stub):
    http_stub.add("GET", WECHAT_TOKEN_URI, {"errcode": 40029, "errmsg": "invalid code"})
    broker = TokenExchangeBroker(token_customizers)

    with pytest.raises(TokenExchangeFailed) as excinfo:
        broker.exchange(_grant(providers, "wechat_open"))

    assert excinfo.value.provider_error_code == "40029"
    assert excinfo.value.provider_error_message == "invalid code"


def test_vendor_http_error_is_failure(providers, token_customizers, http_stub):
    http_stub.add("GET", WECHAT_TOKEN_URI, {"message": "bad gateway"}, status_code=502)

    with pytest.raises(TokenExchangeFailed) as excinfo:
        TokenExchangeBroker(token_customizers).exchange(_grant(providers, "wechat_open"))
    assert excinfo.value.provider_error_code == "http_502"


def test_vendor_transport_error_is_failure(providers, token_customizers, http_stub):
    http_stub.fail("GET", WECHAT_TOKEN_URI, requests.Timeout("timed out"))

    with pytest.raises(TokenExchangeFailed) as excinfo:
        TokenExchangeBroker(token_customizers).exchange(_grant(providers, "wechat_open"))
    assert excinfo.value.provider_error_code == "transport_error"


# ── Feishu ───────────────────────────────────────────────────────────────────
def _stub_feishu(http_stub):
    http_stub.add("POST", FEISHU_APP_TOKEN_URI, {
        "code": 0, "msg": "ok", "app_access_token": "t-app", "expire": 7200,
    })
    http_stub.add("POST", FEISHU_TOKEN_URI, {
        "code": 0,
        "msg": "success",
        "data": {
            "access_token": "u-token",
            "token_type": "Bearer",
            "expires_in": 6900,
            "refresh_token": "ur-token",
            "refresh_expires_in": 2592000,
            "scope": "contact:user.base:readonly",
        },
    })


def test_feishu_exchange_uses_app_token(providers, token_customizers, http_stub):
    _stub_feishu(http_stub)

    response = TokenExchangeBroker(token_customizers).exchange(_grant(providers, "feishu"))

    app_call = http_stub.calls_to(FEISHU_APP_TOKEN_URI)[0]
    assert app_call["json"] == {"app_id": "cli_x", "app_secret": "feishu-secret"}
    token_call = http_stub.calls_to(FEISHU_TOKEN_URI)[0]
    assert token_call["headers"] == {"Authorization": "Bearer t-app"}
    assert token_call["json"] == {"grant_type": "authorization_code", "code": "auth-code"}
    assert response.access_token == "u-token"
    assert response.expires_in == 6900
    assert response.scope == frozenset({"contact:user.base:readonly"})
    assert response.additional_parameters == {"refresh_expires_in": 2592000}


def test_feishu_app_token_is_cached(providers, token_customizers, http_stub, fake_redis):
    _stub_feishu(http_stub)
    broker = TokenExchangeBroker(token_customizers)

    broker.exchange(_grant(providers, "feishu"))
    broker.exchange(_grant(providers, "feishu", code="second"))

    assert len(http_stub.calls_to(FEISHU_APP_TOKEN_URI)) == 1
    assert fake_redis.get("oauth2:app_token:feishu:cli_x") == b"t-app"
    assert 7080 <= fake_redis.ttl("oauth2:app_token:feishu:cli_x") <= 7140


def test_feishu_envelope_error_is_failure(providers, token_customizers, http_stub):
    http_stub.add("POST", FEISHU_APP_TOKEN_URI, {"code": 0, "app_access_token": "t-app", "expire": 7200})
    http_stub.add("POST", FEISHU_TOKEN_URI, {"code": 20003, "msg": "invalid code"})

    with pytest.raises(TokenExchangeFailed) as excinfo:
        TokenExchangeBroker(token_customizers).exchange(_grant(providers, "feishu"))
    assert excinfo.value.provider_error_code == "20003"


# ── WeChat Work ──────────────────────────────────────────────────────────────
def test_wechat_work_exchange_resolves_userid(providers, token_customizers, http_stub):
    http_stub.add("GET", WORK_GETTOKEN_URI, {"errcode": 0, "errmsg": "ok", "access_token": "corp-at", "expires_in": 7200})
    http_stub.add("GET", WORK_LOGIN_URI, {"errcode": 0, "errmsg": "ok", "userid": "zhangsan"})

    response = TokenExchangeBroker(token_customizers).exchange(_grant(providers, "wechat_work"))

    assert http_stub.calls_to(WORK_GETTOKEN_URI)[0]["params"] == {"corpid": "corp1", "corpsecret": "corp-secret"}
    assert http_stub.calls_to(WORK_LOGIN_URI)[0]["params"] == {"access_token": "corp-at", "code": "auth-code"}
    assert response.access_token == "corp-at"
    assert response.token_type == "Bearer"
    assert response.expires_in == 7200
    assert response.scope == frozenset({"snsapi_base"})
    assert response.additional_parameters["userid"] == "zhangsan"


def test_wechat_work_non_member_is_failure(providers, token_customizers, http_stub):
    http_stub.add("GET", WORK_GETTOKEN_URI, {"errcode": 0, "access_token": "corp-at", "expires_in": 7200})
    http_stub.add("GET", WORK_LOGIN_URI, {"errcode": 0, "openid": "o-external"})

    with pytest.raises(TokenExchangeFailed) as excinfo:
        TokenExchangeBroker(token_customizers).exchange(_grant(providers, "wechat_work"))
    assert excinfo.value.provider_error_code == "not_a_member"
