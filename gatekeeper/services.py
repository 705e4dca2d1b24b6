"""Wiring of core components from an ``AppConfig``.

``create_app`` stores the result in ``app.extensions["gatekeeper"]``; request
handlers reach it through ``current_services()``.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

import redis
from flask import current_app

from gatekeeper.config import AppConfig
from gatekeeper.core.accounts import (
    AccountLinkService,
    InMemoryAccountService,
    LocalAccountService,
    RedisAccountLinkStore,
)
from gatekeeper.core.captcha import (
    ChallengeService,
    ChallengeServiceRegistry,
    Channel,
    ImageChallengeGenerator,
    ImageChallengeSender,
    RedisChallengeRepository,
    ResendThrottle,
    SmsChallengeGenerator,
    SmsChallengeSender,
)
from gatekeeper.core.events import LocalAuthenticationEvents
from gatekeeper.core.federation import (
    AppTokenCache,
    AuthorizationRequestBroker,
    ProviderHttpClient,
    ProviderRegistry,
    SocialBindingCoordinator,
    TokenExchangeBroker,
    UserInfoBroker,
    build_default_customizers,
)
from gatekeeper.core.messaging import LoggingMessageDispatcher, MessageDispatcher, WebhookMessageDispatcher

EXTENSION_KEY = "gatekeeper"


@dataclass
class GatekeeperServices:
    captcha: ChallengeServiceRegistry
    providers: ProviderRegistry
    authorization: AuthorizationRequestBroker
    tokens: TokenExchangeBroker
    user_info: UserInfoBroker
    binding: SocialBindingCoordinator
    accounts: LocalAccountService
    links: AccountLinkService
    events: LocalAuthenticationEvents
    dispatcher: MessageDispatcher


def build_redis_client(cfg: AppConfig) -> redis.Redis:
    return redis.Redis.from_url(
        cfg.redis_url,
        socket_timeout=cfg.redis_socket_timeout,
        socket_connect_timeout=cfg.redis_socket_timeout,
    )


def build_dispatcher(cfg: AppConfig) -> MessageDispatcher:
    if cfg.sms_gateway_url:
        return WebhookMessageDispatcher(cfg.sms_gateway_url, timeout=cfg.sms_gateway_timeout)
    if not cfg.demo_mode:
        raise RuntimeError("SMS_GATEWAY_URL is required in production mode.")
    return LoggingMessageDispatcher()


def build_challenge_registry(cfg: AppConfig, redis_client: redis.Redis,
                             dispatcher: MessageDispatcher) -> ChallengeServiceRegistry:
    settings = cfg.captcha
    repository = RedisChallengeRepository(redis_client)
    registry = ChallengeServiceRegistry(type_param=settings.type_param)

    image = settings.image
    registry.register(ChallengeService(
        Channel.IMAGE.value,
        repository,
        ImageChallengeGenerator(
            image.length, image.expire_in,
            width=image.width, height=image.height,
            line_count=image.line_count, font_size=image.font_size,
        ),
        ImageChallengeSender(ResendThrottle(redis_client, Channel.IMAGE.value, image.resend_interval)),
        code_param=image.code_param,
        target_param=image.target_param,
        send_url=image.url,
        validate_urls=image.validate_urls,
        login_url=settings.login_url,
        oauth2_token_url=settings.oauth2_token_url,
        case_sensitive=False,
    ))

    sms = settings.sms
    registry.register(ChallengeService(
        Channel.SMS.value,
        repository,
        SmsChallengeGenerator(sms.length, sms.expire_in),
        SmsChallengeSender(
            ResendThrottle(redis_client, Channel.SMS.value, sms.resend_interval),
            dispatcher,
            sms.template_id,
        ),
        code_param=sms.code_param,
        target_param=sms.target_param,
        send_url=sms.url,
        validate_urls=sms.validate_urls,
        login_url=settings.login_url,
        oauth2_token_url=settings.oauth2_token_url,
        case_sensitive=True,
    ))
    return registry


def build_services(
    cfg: AppConfig,
    redis_client: redis.Redis,
    *,
    account_service: Optional[LocalAccountService] = None,
    link_service: Optional[AccountLinkService] = None,
    dispatcher: Optional[MessageDispatcher] = None,
) -> GatekeeperServices:
    dispatcher = dispatcher or build_dispatcher(cfg)
    accounts = account_service or InMemoryAccountService.from_config(cfg.demo_users)
    links = link_service or RedisAccountLinkStore(redis_client)

    providers = ProviderRegistry.from_settings(cfg.oauth2_registrations)
    http = ProviderHttpClient(timeout=cfg.provider_http_timeout)
    tables = build_default_customizers(http, AppTokenCache(redis_client))

    events = LocalAuthenticationEvents()
    binding = SocialBindingCoordinator(links)
    events.subscribe(binding.on_local_authentication)

    return GatekeeperServices(
        captcha=build_challenge_registry(cfg, redis_client, dispatcher),
        providers=providers,
        authorization=AuthorizationRequestBroker(providers, tables.authorization),
        tokens=TokenExchangeBroker(tables.token, timeout=cfg.provider_http_timeout),
        user_info=UserInfoBroker(providers, tables.user_info, timeout=cfg.provider_http_timeout),
        binding=binding,
        accounts=accounts,
        links=links,
        events=events,
        dispatcher=dispatcher,
    )


def current_services() -> GatekeeperServices:
    return current_app.extensions[EXTENSION_KEY]
