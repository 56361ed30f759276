"""QR image renderer for BR Code payloads."""
from __future__ import annotations

import base64
import io
import logging
from typing import Any

import qrcode
from PIL import Image, ImageDraw, ImageFont

from .monitoring import record_render_failure
from .services.errors import RenderingUnavailable

logger = logging.getLogger("pixqr.renderer")


def generate_qr_image(data: str, title: str = "pixqr") -> Image.Image:
    """Generate QR image with a framed caption below the code."""

    qr = qrcode.QRCode(version=None, error_correction=qrcode.constants.ERROR_CORRECT_M, box_size=10, border=4)
    qr.add_data(data)
    qr.make(fit=True)

    qr_img = qr.make_image(fill_color="black", back_color="white").convert("RGBA")
    width, height = qr_img.size

    label_height = 40
    margin = 40
    canvas_width = width + margin * 2
    canvas_height = height + margin * 2 + label_height

    canvas = Image.new("RGBA", (canvas_width, canvas_height), color="#F5F7FA")
    canvas.paste(qr_img, (margin, margin))

    draw = ImageDraw.Draw(canvas)
    font = ImageFont.load_default()
    text = title.upper()
    left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
    text_x = (canvas_width - (right - left)) // 2
    text_y = margin + height + (label_height - (bottom - top)) // 2
    draw.rectangle(
        [(margin // 2, margin + height), (canvas_width - margin // 2, margin + height + label_height)],
        fill="#FFFFFF",
    )
    draw.text((text_x, text_y), text, fill="#1F2937", font=font)

    return canvas


def qr_image_to_png_bytes(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def render_qr_payload(payload: str, title: str = "pixqr") -> dict[str, Any]:
    """Render payload into PNG bytes, base64 string and data URL.

    Any failure of the imaging stack is reported as ``RenderingUnavailable``;
    the payload is left untouched so it can still be shown as text.
    """

    try:
        image = generate_qr_image(payload, title=title)
        png_bytes = qr_image_to_png_bytes(image)
    except Exception as exc:
        record_render_failure()
        logger.exception("qr rendering failed", extra={"payload_length": len(payload)})
        raise RenderingUnavailable(f"QR rendering unavailable: {exc}") from exc

    png_base64 = base64.b64encode(png_bytes).decode("ascii")
    return {
        "png_bytes": png_bytes,
        "png_base64": png_base64,
        "data_url": f"data:image/png;base64,{png_base64}",
    }
