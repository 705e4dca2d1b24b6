"""Settings loader with environment variable and Docker secrets integration."""
from __future__ import annotations
import json
import os
import secrets
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional


def _load_secret_from_file(secret_name: str, env_var: str | None = None) -> str | None:
    """
    Load secret from /run/secrets (Docker secrets pattern).

    Priority:
    1. /run/secrets/{secret_name} (Docker secrets mount)
    2. Environment variable (fallback)

    Args:
        secret_name: Name of the secret file in /run/secrets
        env_var: Optional environment variable name to check as fallback

    Returns:
        Secret value or None if not found
    """
    secret_file = Path("/run/secrets") / secret_name

    if secret_file.exists() and secret_file.is_file():
        try:
            secret_value = secret_file.read_text().strip()
            if secret_value:
                print(f"[settings] ✓ Loaded {secret_name} from /run/secrets")
                return secret_value
        except OSError as e:
            print(f"[settings] ✗ Failed to read /run/secrets/{secret_name}: {e}")

    if env_var:
        secret_value = os.getenv(env_var)
        if secret_value:
            return secret_value

    return None


def _env_int(var_name: str, default: int) -> int:
    raw = os.environ.get(var_name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"Environment variable {var_name} must be an integer, got {raw!r}")


def _env_float(var_name: str, default: float) -> float:
    raw = os.environ.get(var_name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"Environment variable {var_name} must be a number, got {raw!r}")


def _env_list(var_name: str, default: list[str]) -> list[str]:
    raw = os.environ.get(var_name)
    if raw is None:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env_json(var_name: str, default: Any) -> Any:
    raw = os.environ.get(var_name, "").strip()
    if not raw:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise RuntimeError(f"Environment variable {var_name} is not valid JSON: {e}")


@dataclass
class ImageCaptchaSettings:
    """Image challenge channel settings."""
    length: int = 4
    expire_in: int = 60
    resend_interval: int = 0
    width: int = 120
    height: int = 40
    line_count: int = 20
    font_size: int = 28
    code_param: str = "imageCode"
    target_param: str = "uuid"
    url: str = "/captcha/image"
    validate_urls: list[str] = field(default_factory=list)


@dataclass
class SmsCaptchaSettings:
    """SMS challenge channel settings."""
    length: int = 6
    expire_in: int = 60
    resend_interval: int = 60
    template_id: str = "SMS_LOGIN_CODE"
    code_param: str = "smsCode"
    target_param: str = "mobile"
    url: str = "/captcha/sms"
    validate_urls: list[str] = field(default_factory=list)


@dataclass
class CaptchaSettings:
    """Challenge gate settings shared by all channels."""
    type_param: str = "captchaType"
    login_url: str = "/login"
    oauth2_token_url: str = "/oauth2/token"
    image: ImageCaptchaSettings = field(default_factory=ImageCaptchaSettings)
    sms: SmsCaptchaSettings = field(default_factory=SmsCaptchaSettings)


@dataclass
class AppConfig:
    """Application configuration container."""
    # Mode
    demo_mode: bool

    # Flask
    secret_key: str
    session_type: str = "cookie"
    session_cookie_secure: bool = True

    # Redis
    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout: float = 5.0

    # Challenge gate
    captcha: CaptchaSettings = field(default_factory=CaptchaSettings)

    # Federation
    oauth2_registrations: dict[str, dict] = field(default_factory=dict)
    provider_http_timeout: float = 5.0

    # Message dispatch
    sms_gateway_url: str = ""
    sms_gateway_timeout: float = 5.0

    # Demo local accounts
    demo_users: list[dict] = field(default_factory=list)


def _get_or_generate(var_name: str, demo_default: Optional[str] = None, required: bool = True, demo_mode: bool = False) -> str:
    """Get environment variable or use demo default/generate."""
    value = os.environ.get(var_name)
    if value:
        return value

    if demo_mode and demo_default is not None:
        print(f"[demo-mode] Using default for {var_name}")
        os.environ[var_name] = demo_default
        return demo_default

    if not required:
        return ""

    raise RuntimeError(f"Environment variable {var_name} is required in production mode.")


def _load_captcha_settings() -> CaptchaSettings:
    """Read challenge gate settings from CAPTCHA_* environment variables."""
    image_defaults = ImageCaptchaSettings()
    sms_defaults = SmsCaptchaSettings()

    image = ImageCaptchaSettings(
        length=_env_int("CAPTCHA_IMAGE_LENGTH", image_defaults.length),
        expire_in=_env_int("CAPTCHA_IMAGE_EXPIRE_IN", image_defaults.expire_in),
        resend_interval=_env_int("CAPTCHA_IMAGE_RESEND_INTERVAL", image_defaults.resend_interval),
        width=_env_int("CAPTCHA_IMAGE_WIDTH", image_defaults.width),
        height=_env_int("CAPTCHA_IMAGE_HEIGHT", image_defaults.height),
        line_count=_env_int("CAPTCHA_IMAGE_LINE_COUNT", image_defaults.line_count),
        font_size=_env_int("CAPTCHA_IMAGE_FONT_SIZE", image_defaults.font_size),
        code_param=os.environ.get("CAPTCHA_IMAGE_CODE_PARAM", image_defaults.code_param),
        target_param=os.environ.get("CAPTCHA_IMAGE_TARGET_PARAM", image_defaults.target_param),
        url=os.environ.get("CAPTCHA_IMAGE_URL", image_defaults.url),
        validate_urls=_env_list("CAPTCHA_IMAGE_VALIDATE_URLS", []),
    )
    sms = SmsCaptchaSettings(
        length=_env_int("CAPTCHA_SMS_LENGTH", sms_defaults.length),
        expire_in=_env_int("CAPTCHA_SMS_EXPIRE_IN", sms_defaults.expire_in),
        resend_interval=_env_int("CAPTCHA_SMS_RESEND_INTERVAL", sms_defaults.resend_interval),
        template_id=os.environ.get("CAPTCHA_SMS_TEMPLATE_ID", sms_defaults.template_id),
        code_param=os.environ.get("CAPTCHA_SMS_CODE_PARAM", sms_defaults.code_param),
        target_param=os.environ.get("CAPTCHA_SMS_TARGET_PARAM", sms_defaults.target_param),
        url=os.environ.get("CAPTCHA_SMS_URL", sms_defaults.url),
        validate_urls=_env_list("CAPTCHA_SMS_VALIDATE_URLS", []),
    )

    return CaptchaSettings(
        type_param=os.environ.get("CAPTCHA_TYPE_PARAM", "captchaType"),
        login_url=os.environ.get("CAPTCHA_LOGIN_URL", "/login"),
        oauth2_token_url=os.environ.get("CAPTCHA_OAUTH2_TOKEN_URL", "/oauth2/token"),
        image=image,
        sms=sms,
    )


def _load_oauth2_registrations() -> dict[str, dict]:
    """Read OAUTH2_REGISTRATIONS and resolve client secrets.

    Secrets may be omitted from the JSON document and supplied instead via
    /run/secrets/oauth2_<id>_client_secret or OAUTH2_<ID>_CLIENT_SECRET.
    """
    registrations = _env_json("OAUTH2_REGISTRATIONS", {})
    if not isinstance(registrations, dict):
        raise RuntimeError("OAUTH2_REGISTRATIONS must be a JSON object keyed by registration id")

    resolved: dict[str, dict] = {}
    for registration_id, entry in registrations.items():
        if not isinstance(entry, dict):
            raise RuntimeError(f"OAUTH2_REGISTRATIONS[{registration_id!r}] must be an object")
        entry = dict(entry)
        if not entry.get("client_secret"):
            env_name = f"OAUTH2_{registration_id.upper().replace('-', '_')}_CLIENT_SECRET"
            secret = _load_secret_from_file(f"oauth2_{registration_id}_client_secret", env_name)
            if secret:
                entry["client_secret"] = secret
        resolved[registration_id] = entry
    return resolved


def load_settings() -> AppConfig:
    """Load application settings from environment and /run/secrets."""
    demo_mode = os.environ.get("DEMO_MODE", "false").lower() == "true"

    # Flask secret key
    secret_key = _load_secret_from_file("flask_secret_key", "FLASK_SECRET_KEY")
    if not secret_key:
        if demo_mode:
            secret_key = secrets.token_urlsafe(48)
            os.environ["FLASK_SECRET_KEY"] = secret_key
            print("[demo-mode] Generated temporary FLASK_SECRET_KEY")
        else:
            raise RuntimeError("FLASK_SECRET_KEY not found in /run/secrets or environment")

    session_type = os.environ.get("SESSION_TYPE", "cookie").strip().lower() or "cookie"

    session_secure_str = os.environ.get("FLASK_SESSION_COOKIE_SECURE")
    session_cookie_secure = (session_secure_str or "true").lower() == "true"

    redis_url = _load_secret_from_file("redis_url", "REDIS_URL") or _get_or_generate(
        "REDIS_URL",
        demo_default="redis://localhost:6379/0",
        demo_mode=demo_mode,
    )

    demo_users = _env_json("DEMO_USERS", None)
    if demo_users is None:
        demo_users = []
        if demo_mode:
            demo_users = [{
                "username": "alice",
                "password": os.environ.get("ALICE_TEMP_PASSWORD", "Temp123!"),
                "mobile": "13800000000",
            }]

    captcha = _load_captcha_settings()
    oauth2_registrations = _load_oauth2_registrations()

    mode_label = "DEMO" if demo_mode else "PRODUCTION"
    print(
        f"[settings] Mode={mode_label}; session={session_type}; "
        f"oauth2 registrations={sorted(oauth2_registrations) or 'none'}"
    )

    if demo_mode:
        print("[settings] WARNING: Demo credentials in use. Do not deploy with these defaults.")

    return AppConfig(
        demo_mode=demo_mode,
        secret_key=secret_key,
        session_type=session_type,
        session_cookie_secure=session_cookie_secure,
        redis_url=redis_url,
        redis_socket_timeout=_env_float("REDIS_SOCKET_TIMEOUT", 5.0),
        captcha=captcha,
        oauth2_registrations=oauth2_registrations,
        provider_http_timeout=_env_float("PROVIDER_HTTP_TIMEOUT", 5.0),
        sms_gateway_url=os.environ.get("SMS_GATEWAY_URL", ""),
        sms_gateway_timeout=_env_float("SMS_GATEWAY_TIMEOUT", 5.0),
        demo_users=demo_users,
    )
