import pytest

from gatekeeper.core.federation import ProviderRegistry, UnknownRegistration, build_descriptor


def test_vendor_template_fills_endpoints():
    descriptor = build_descriptor("feishu", {"client_id": "cli_x", "client_secret": "s"})

    assert descriptor.provider == "feishu"
    assert descriptor.token_uri == "https://open.feishu.cn/open-apis/authen/v1/oidc/access_token"
    assert descriptor.user_name_attribute == "union_id"
    assert descriptor.meta("app_access_token_uri").endswith("/auth/v3/app_access_token/internal")


def test_several_registrations_share_a_vendor():
    registry = ProviderRegistry.from_settings({
        "wechat-web": {"provider": "wechat_open", "client_id": "wx1", "client_secret": "s1"},
        "wechat-h5": {"provider": "wechat_mp", "client_id": "wx2", "client_secret": "s2"},
    })

    assert registry.get("wechat-web").provider == "wechat_open"
    assert registry.get("wechat-h5").scopes == ("snsapi_userinfo",)
    assert len(registry) == 2


def test_settings_override_template_and_merge_metadata():
    descriptor = build_descriptor("wechat_work", {
        "client_id": "corp",
        "client_secret": "s",
        "scopes": "snsapi_privateinfo",
        "metadata": {"agent_id": "1000009"},
    })

    assert descriptor.scopes == ("snsapi_privateinfo",)
    assert descriptor.meta("agent_id") == "1000009"
    assert descriptor.meta("login_type") == "CorpApp"


def test_unknown_vendor_requires_endpoints():
    with pytest.raises(ValueError, match="authorization_uri"):
        build_descriptor("github", {"client_id": "gh"})


def test_redirect_uri_template_expansion():
    descriptor = build_descriptor("feishu", {"client_id": "cli_x"})

    assert descriptor.expand_redirect_uri("https://sso.example.com/") == \
        "https://sso.example.com/login/oauth2/code/feishu"
    assert descriptor.is_public_client


def test_unknown_registration_raises():
    with pytest.raises(UnknownRegistration):
        ProviderRegistry().get("nope")
    assert ProviderRegistry().find("nope") is None
