from types import SimpleNamespace
from urllib.parse import parse_qs, parse_qsl, urlparse

import pytest
from authlib.oauth2.rfc7636 import create_s256_code_challenge

from gatekeeper.core.federation import (
    AuthorizationRequest,
    AuthorizationRequestBroker,
    ProviderHttpClient,
    ProviderRegistry,
    UnknownRegistration,
    build_default_customizers,
    registration_id_from_path,
)

BASE_URL = "https://sso.example.com/"


@pytest.fixture()
def providers():
    return ProviderRegistry.from_settings({
        "github": {
            "client_id": "gh",
            "client_secret": "secret",
            "authorization_uri": "https://github.com/login/oauth/authorize",
            "token_uri": "https://github.com/login/oauth/access_token",
            "scopes": ["read:user"],
        },
        "oidc": {
            "client_id": "spa",
            "authorization_uri": "https://idp.example.com/authorize",
            "token_uri": "https://idp.example.com/token",
            "scopes": ["openid", "profile"],
        },
        "wechat_open": {"client_id": "wx123", "client_secret": "s"},
        "wechat_work": {"client_id": "corp1", "client_secret": "s"},
        "feishu": {"client_id": "cli_x", "client_secret": "s"},
    })


@pytest.fixture()
def broker(providers):
    tables = build_default_customizers(ProviderHttpClient())
    return AuthorizationRequestBroker(providers, tables.authorization)


def _query(url):
    return parse_qsl(urlparse(url).query)


def test_registration_id_from_path():
    assert registration_id_from_path("/oauth2/authorization/feishu") == "feishu"
    assert registration_id_from_path("/oauth2/authorization/") is None
    assert registration_id_from_path("/login") is None


def test_standard_request_for_confidential_client(broker):
    auth_request = broker.authorize("github", BASE_URL)
    params = dict(_query(auth_request.to_url()))

    assert params["response_type"] == "code"
    assert params["client_id"] == "gh"
    assert params["redirect_uri"] == "https://sso.example.com/login/oauth2/code/github"
    assert params["scope"] == "read:user"
    assert params["state"] == auth_request.state
    assert "code_challenge" not in params
    assert "nonce" not in params


def test_public_openid_client_gets_nonce_and_pkce(broker):
    auth_request = broker.authorize("oidc", BASE_URL)
    params = dict(_query(auth_request.to_url()))

    assert params["nonce"] == auth_request.nonce
    assert params["code_challenge_method"] == "S256"
    assert params["code_challenge"] == create_s256_code_challenge(auth_request.code_verifier)


def test_state_is_unique_per_request(broker):
    assert broker.authorize("github", BASE_URL).state != broker.authorize("github", BASE_URL).state


def test_unknown_registration_fails_before_provider_contact(broker, http_stub):
    request = SimpleNamespace(path="/oauth2/authorization/missing", host_url=BASE_URL)

    with pytest.raises(UnknownRegistration):
        broker.resolve(request)
    assert http_stub.calls == []


def test_resolve_ignores_other_paths(broker):
    assert broker.resolve(SimpleNamespace(path="/login", host_url=BASE_URL)) is None


def test_wechat_uses_appid_in_vendor_order_with_fragment(broker):
    url = broker.authorize("wechat_open", BASE_URL).to_url()

    assert url.startswith("https://open.weixin.qq.com/connect/qrconnect?appid=wx123&redirect_uri=")
    assert [key for key, _ in _query(url)] == ["appid", "redirect_uri", "response_type", "scope", "state"]
    assert url.endswith("#wechat_redirect")
    assert dict(_query(url))["scope"] == "snsapi_login"


def test_wechat_work_corp_app_parameters(broker):
    params = _query(broker.authorize("wechat_work", BASE_URL).to_url())

    assert [key for key, _ in params] == ["login_type", "appid", "agentid", "redirect_uri", "state", "lang"]
    assert dict(params)["login_type"] == "CorpApp"
    assert dict(params)["agentid"] == "1000002"


def test_wechat_work_service_app_has_no_agentid():
    providers = ProviderRegistry.from_settings({
        "wechat_work": {"client_id": "corp1", "client_secret": "s", "metadata": {"login_type": "ServiceApp"}},
    })
    broker = AuthorizationRequestBroker(providers, build_default_customizers(ProviderHttpClient()).authorization)

    assert "agentid" not in parse_qs(urlparse(broker.authorize("wechat_work", BASE_URL).to_url()).query)


def test_feishu_renames_client_id(broker):
    params = dict(_query(broker.authorize("feishu", BASE_URL).to_url()))

    assert params["app_id"] == "cli_x"
    assert "client_id" not in params


def test_session_round_trip(broker):
    auth_request = broker.authorize("oidc", BASE_URL)

    restored = AuthorizationRequest.from_dict(auth_request.to_dict())

    assert restored == auth_request
    assert restored.to_url() == auth_request.to_url()
