"""Configuration module for the gatekeeper application."""
from .settings import (
    AppConfig,
    CaptchaSettings,
    ImageCaptchaSettings,
    SmsCaptchaSettings,
    load_settings,
)

__all__ = [
    "AppConfig",
    "CaptchaSettings",
    "ImageCaptchaSettings",
    "SmsCaptchaSettings",
    "load_settings",
]
