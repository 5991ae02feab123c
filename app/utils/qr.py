import os
import qrcode
from app.core.config import settings


QR_CODE_DIR = settings.static_dir / "qrcodes"
STATIC_URL_PREFIX = "/static/qrcodes"


def generate_and_save_qr(payload: str, filename: str) -> str:
    """
    Renders a container QR code and returns its public URL.
    The payload is encoded as-is: for containers it is exactly the container
    id, nothing else.
    """
    os.makedirs(QR_CODE_DIR, exist_ok=True)

    file_path = QR_CODE_DIR / f"{filename}.png"
    if not file_path.exists():
        qr = qrcode.QRCode(
            version=None,
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=10,
            border=4,
        )
        qr.add_data(payload)
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")
        img.save(file_path)

    return f"{settings.public_url}{STATIC_URL_PREFIX}/{filename}.png"
