"""
Named processing profiles for common kinds of uploaded content.
"""

from __future__ import annotations

from typing import Callable, Dict, List

from image_variants.application.processing_config import ProcessingConfig
from image_variants.core.exceptions import ConfigurationError


def _default() -> ProcessingConfig:
    return ProcessingConfig()


def _avatar() -> ProcessingConfig:
    return (
        ProcessingConfig()
        .set_sizes(
            [
                {"width": 32, "height": 32},
                {"width": 64, "height": 64},
                {"width": 128, "height": 128},
                {"width": 256, "height": 256},
            ]
        )
        .set_formats([{"type": "webp", "quality": 90}, {"type": "jpeg", "quality": 95}])
        .set_dpr([1, 2])
    )


def _gallery() -> ProcessingConfig:
    return (
        ProcessingConfig()
        .set_sizes([150, 400, 800, 1200, 1920])
        .set_formats(
            [
                {"type": "avif", "quality": 80},
                {"type": "webp", "quality": 85},
                {"type": "jpeg", "quality": 90},
            ]
        )
        .set_dpr([1, 2, 3])
    )


def _banner() -> ProcessingConfig:
    return (
        ProcessingConfig()
        .set_sizes(
            [
                {"width": 320, "height": 180},
                {"width": 768, "height": 432},
                {"width": 1200, "height": 675},
                {"width": 1920, "height": 1080},
            ]
        )
        .set_formats([{"type": "webp", "quality": 85}, {"type": "jpeg", "quality": 90}])
        .set_dpr([1, 2])
    )


def _product() -> ProcessingConfig:
    return (
        ProcessingConfig()
        .set_sizes([100, 300, 600, 1200])
        .set_formats(
            [
                {"type": "avif", "quality": 85},
                {"type": "webp", "quality": 90},
                {"type": "jpeg", "quality": 95},
            ]
        )
        .set_dpr([1, 2, 3])
    )


PROFILES: Dict[str, Callable[[], ProcessingConfig]] = {
    "default": _default,
    "avatar": _avatar,
    "gallery": _gallery,
    "banner": _banner,
    "product": _product,
}


def available_profiles() -> List[str]:
    return sorted(PROFILES)


def get_profile(name: str) -> ProcessingConfig:
    """Return a fresh config for the named profile."""
    key = (name or "").strip().lower()
    builder = PROFILES.get(key)
    if builder is None:
        raise ConfigurationError(
            f"Unknown processing profile '{name}'. "
            f"Available: {', '.join(available_profiles())}",
            config_key="profile",
        )
    return builder()
