"""Receipt (comprovante) storage as data URIs"""

import base64
import binascii
import re

from accounts_gateway.domain.exceptions import PayloadTooLarge, UnsupportedFormat

DATA_URI = re.compile(r"^data:image/(?P<fmt>[a-z]+);base64,(?P<payload>.*)$", re.DOTALL)


def sniff_image_format(image_bytes: bytes) -> str | None:
    """Image subtype from magic bytes, None when not a supported image"""
    if image_bytes.startswith(b"\xff\xd8\xff"):
        return "jpeg"
    if image_bytes.startswith(b"\x89PNG\r\n\x1a\n"):
        return "png"
    if image_bytes[:6] in (b"GIF87a", b"GIF89a"):
        return "gif"
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "webp"
    return None


def decode_receipt(encoded: str) -> bytes:
    """
    Decode a receipt sent as a data URI or bare base64 string.

    Raises:
        UnsupportedFormat: Payload is not valid base64
    """
    match = DATA_URI.match(encoded.strip())
    payload = match.group("payload") if match else encoded.strip()
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise UnsupportedFormat("Receipt is not valid base64") from e


class DataUriReceiptStore:
    """Keeps receipts inline as data:image/...;base64 references"""

    def store(self, image_bytes: bytes, max_size_bytes: int) -> str:
        if len(image_bytes) > max_size_bytes:
            raise PayloadTooLarge(
                f"Receipt is {len(image_bytes) / (1024 * 1024):.2f}MB, limit is {max_size_bytes / (1024 * 1024):.2f}MB"
            )
        fmt = sniff_image_format(image_bytes)
        if fmt is None:
            raise UnsupportedFormat()
        return f"data:image/{fmt};base64,{base64.b64encode(image_bytes).decode('ascii')}"
