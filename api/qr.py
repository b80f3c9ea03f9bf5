"""
Pairing-code rendering.

Encodes the pending pairing code as an SVG QR image inside a data: URL,
ready for an <img src=...> on the dashboard.
"""

import base64
from io import BytesIO
from typing import Optional

import qrcode
from qrcode.image.svg import SvgPathImage


def qr_data_url(code: Optional[str]) -> Optional[str]:
    """SVG data URL for a pairing code, None when there is no code."""
    if not code:
        return None

    image = qrcode.make(code, image_factory=SvgPathImage)
    buffer = BytesIO()
    image.save(buffer)
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/svg+xml;base64,{encoded}"
