import base64
from io import BytesIO

import qrcode


def create_qr_code_png(data: str) -> bytes:
    """Render ``data`` as a QR code PNG."""
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=4,
    )
    qr.add_data(data)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffered = BytesIO()
    img.save(buffered, "PNG")
    return buffered.getvalue()


def qr_code_data_uri(data: str) -> str:
    """QR code PNG as a ``data:`` URI, ready to inline in an email."""
    encoded = base64.b64encode(create_qr_code_png(data)).decode("utf-8")
    return f"data:image/png;base64,{encoded}"
