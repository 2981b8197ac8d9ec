"""Image provider abstractions and the Stability AI implementation."""

import base64
import binascii
import hashlib
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx
from loguru import logger

from .exceptions import ConfigurationError, ImageProviderError, ImageValidationError
from .retry import retry_call

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

GENERATE_PATH = "/v2beta/stable-image/generate/sd3"
REMOVE_BACKGROUND_PATH = "/v2beta/stable-image/edit/remove-background"

NEGATIVE_PROMPT = (
    "background, black background, white background, grey background, any background color, "
    "filled background, square, rectangle, frame, border, box, color, gradient, shading, "
    "filled shapes, solid shapes, photo, 3D, realistic"
)

BASE_PROMPT = """STICKER, DIE-CUT STICKER, isolated object, no background, cutout.
White line art creature only, thin white outlines, minimalist design.
Subject: Simple WATER DROPLET CREATURE made of white lines.
Isolated on transparent, PNG cutout, sticker format, no square, no frame."""

STYLE_NOTE = (
    "CRITICAL: Die-cut sticker style, isolated white line art only, completely transparent "
    "background, no box, no frame, no square background."
)

DETAILS = ("subtle highlights", "soft shadows", "curved edges", "smooth lines", "gentle curves")
FEATURES = ("flowing motion", "dynamic splash", "elegant curves", "graceful form", "fluid movement")
ACCENTS = ("dramatic waves", "majestic presence", "heroic stance", "powerful flow", "commanding aura")


def is_png(data: bytes) -> bool:
    return data[:8] == PNG_SIGNATURE


def generate_seed(text: str) -> str:
    """SHA-256 hex digest used as a deterministic generation seed."""
    return hashlib.sha256(text.encode()).hexdigest()


def seed_to_int(seed: str) -> int:
    """Integer seed for the provider, taken from the first 8 hex characters."""
    return int(seed[:8], 16)


def _string_hash(text: str) -> int:
    # 32-bit signed rolling hash (h * 31 + c), wrapped like JavaScript's ``| 0``.
    h = 0
    for char in text:
        h = ((h << 5) - h + ord(char) + 2**31) % 2**32 - 2**31
    return h


def derive_traits(seed: str, level: int) -> dict[str, Any]:
    """Deterministic creature traits for a seed and level (1-3)."""
    h = _string_hash(seed)

    def rng(offset: int) -> int:
        return abs(h + offset) % 100

    traits: dict[str, Any] = {
        "type": "water",
        "level": level,
        "form": {1: "droplet", 2: "stream"}.get(level, "wave"),
        "eyes": ("dot", "sparkle", "ripple")[rng(1) % min(level, 3)],
        "ripple_count": level + rng(2) % 2,
    }
    if level >= 2:
        traits["fins"] = ("small", "curved", "splash")[rng(3) % 3]
        traits["crest"] = "small" if rng(4) % 2 == 0 else "none"
    if level >= 3:
        traits["crest"] = ("pronounced", "flowing", "heroic")[rng(5) % 3]
        traits["foam"] = "hatched" if rng(6) % 2 == 0 else "streaked"
        traits["posture"] = ("heroic", "dynamic", "majestic")[rng(7) % 3]
    return traits


def build_prompt(level: int, traits: dict[str, Any]) -> str:
    """Text prompt for a creature of the given level."""
    h = len("".join(str(v) for v in traits.values()))
    detail = DETAILS[(h + 1) % 10 % len(DETAILS)]
    feature = FEATURES[(h + 2) % 10 % len(FEATURES)]
    accent = ACCENTS[(h + 3) % 10 % len(ACCENTS)]

    if level == 1:
        body = (
            f"Level 1: tiny water droplet with {traits['eyes']} dot eyes, "
            f"{traits['ripple_count']} ripple lines, simple round shape, {detail}."
        )
    elif level == 2:
        body = (
            f"Level 2: water droplet with {traits['fins']} fin lines, {traits['ripple_count']} "
            f"ripples, {traits['crest']} wave tail, {feature}."
        )
    else:
        body = (
            f"Level 3: flowing water creature, {traits['crest']} crest lines, {traits['foam']} "
            f"foam streaks, {traits['ripple_count']} ripples, {accent}."
        )
    return f"{BASE_PROMPT}\n\n{body}\n\n{STYLE_NOTE}"


@dataclass
class GenInput:
    """Image generation request."""

    seed: str
    level: int
    size: str = "1024x1024"


@dataclass
class GenOutput:
    """Generated PNG bytes and the traits it was drawn from."""

    png: bytes
    traits: dict[str, Any] = field(default_factory=dict)


class ImageProvider(Protocol):
    """Protocol for text-to-image providers."""

    async def generate(self, gen_input: GenInput) -> GenOutput: ...
    async def health_check(self) -> bool: ...


@dataclass
class ImageProviderConfig:
    """Configuration for image providers."""

    api_key: str
    base_url: str = "https://api.stability.ai"
    timeout: float = 60
    remove_background: bool = True


def _extract_image(payload: Any) -> bytes | None:
    """Decode the image from either response shape; None when there is none."""
    if not isinstance(payload, dict):
        return None
    encoded = payload.get("image")
    images = payload.get("images")
    if not encoded and isinstance(images, list) and images and isinstance(images[0], dict):
        encoded = images[0].get("b64") or images[0].get("image")
    if not encoded or not isinstance(encoded, str):
        return None
    return base64.b64decode(encoded)


class StabilityImageProvider:
    """Stability AI SD3 provider with background removal."""

    def __init__(self, config: ImageProviderConfig, client: httpx.AsyncClient | None = None):
        """Initialize the provider.

        Args:
            config: Provider configuration.
            client: HTTP client to use. One is created when not provided.
        """
        if not config.api_key:
            raise ConfigurationError("Stability API key is required")
        self.config = config
        self.client = client or httpx.AsyncClient(
            base_url=config.base_url, timeout=config.timeout
        )

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.config.api_key}", "Accept": "application/json"}

    async def generate(self, gen_input: GenInput) -> GenOutput:
        """Generate one creature image (single attempt)."""
        traits = derive_traits(gen_input.seed, gen_input.level)
        width, _, height = gen_input.size.partition("x")
        png = await self._generate_image(
            build_prompt(gen_input.level, traits), seed_to_int(gen_input.seed), width, height
        )
        if self.config.remove_background:
            png = await self._remove_background(png)
        return GenOutput(png=png, traits=traits)

    async def _generate_image(self, prompt: str, seed: int, width: str, height: str) -> bytes:
        form = {
            "prompt": prompt,
            "negative_prompt": NEGATIVE_PROMPT,
            "seed": str(seed),
            "width": width,
            "height": height,
            "output_format": "png",
            "cfg_scale": "10",
            "steps": "30",
        }
        try:
            # The empty file part forces a multipart/form-data body.
            response = await self.client.post(
                GENERATE_PATH, headers=self._headers, data=form, files={"none": ""}
            )
        except httpx.HTTPError as e:
            raise ImageProviderError(f"Stability request failed: {e}") from e

        if response.status_code >= 400:
            raise ImageProviderError(
                f"Stability API error: {response.status_code} - {response.text[:500]}"
            )
        try:
            png = _extract_image(response.json())
        except (ValueError, binascii.Error) as e:
            raise ImageProviderError(f"Malformed Stability response: {e}") from e
        if png is None:
            raise ImageProviderError("No image data in Stability API response")
        return png

    async def _remove_background(self, png: bytes) -> bytes:
        """Strip the background. Any failure returns the original image."""
        try:
            response = await self.client.post(
                REMOVE_BACKGROUND_PATH,
                headers=self._headers,
                data={"output_format": "png"},
                files={"image": ("image.png", png, "image/png")},
            )
            if response.status_code >= 400:
                logger.warning(f"Background removal failed: {response.status_code}")
                return png
            cleaned = _extract_image(response.json())
        except (httpx.HTTPError, ValueError, binascii.Error) as e:
            logger.warning(f"Background removal error: {e}")
            return png
        if cleaned is None:
            logger.warning("No image in background removal response")
            return png
        return cleaned

    async def health_check(self) -> bool:
        """Check if provider is configured."""
        return bool(self.config.api_key)

    async def aclose(self) -> None:
        await self.client.aclose()


async def generate_with_retry(
    provider: ImageProvider,
    gen_input: GenInput,
    attempts: int = 3,
    base_delay: float = 1.0,
) -> GenOutput:
    """Generate an image with retries, then check that the result is a PNG.

    Raises:
        ImageProviderError: All attempts failed.
        ImageValidationError: The provider returned something that is not a PNG.
    """
    try:
        output = await retry_call(
            provider.generate,
            gen_input,
            label="Image generation",
            attempts=attempts,
            base_delay=base_delay,
        )
    except ImageProviderError:
        raise
    except Exception as e:
        raise ImageProviderError(f"Image generation failed after {attempts} attempts: {e}") from e

    if not is_png(output.png):
        raise ImageValidationError("Generated image is not a valid PNG")
    return output


def create_image_provider(settings: Any = None) -> ImageProvider:
    """Factory function to create the configured image provider."""
    if settings is None:
        from .config import settings

    if not settings.stability_api_key:
        raise ConfigurationError(
            "No image provider configured. Set DROPLETS_STABILITY_API_KEY"
        )

    logger.info("Using Stability AI image provider")
    return StabilityImageProvider(
        ImageProviderConfig(
            api_key=settings.stability_api_key,
            base_url=settings.stability_base_url,
            timeout=settings.image_timeout,
            remove_background=settings.remove_background,
        )
    )
