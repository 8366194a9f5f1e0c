"""
whatsapp_bridge/services/qr_service.py

Purpose: QR code rendering

- Turns the protocol's pairing string into an embeddable data URL (SVG)
- Prints a compact QR to the operator console
"""

import base64
import io
import sys

import qrcode
import qrcode.image.svg


def render_qr_data_url(qr_payload: str) -> str:
    """
    Renders a pairing payload as an SVG data URL for an <img> tag.

    Args:
        qr_payload: Raw QR string emitted by the protocol connection

    Returns:
        data:image/svg+xml;base64,... string
    """
    image = qrcode.make(qr_payload, image_factory=qrcode.image.svg.SvgPathImage)
    buffer = io.BytesIO()
    image.save(buffer)
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/svg+xml;base64,{encoded}"


def print_qr_terminal(qr_payload: str, out=None):
    """Prints the QR as text blocks so an operator can scan it from the console."""
    qr = qrcode.QRCode(border=1)
    qr.add_data(qr_payload)
    qr.make(fit=True)
    qr.print_ascii(out=out or sys.stdout, invert=True)
