import qrcode
import base64
from io import BytesIO
from typing import Optional

def generate_qr_code(data: str, box_size: int = 10, border: int = 4) -> str:
    """
    Génère un QR code PNG à partir d'une charge utile de paiement et le retourne en data URL.

    Args:
        data: La charge utile à encoder (payload fourni par le service de paiement, ou référence)
        box_size: La taille de chaque boîte du QR code
        border: La taille de la bordure du QR code

    Returns:
        "data:image/png;base64,..."
    """
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=box_size,
        border=border,
    )
    qr.add_data(data)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")

    buffered = BytesIO()
    img.save(buffered, format="PNG")
    img_str = base64.b64encode(buffered.getvalue()).decode("utf-8")

    return f"data:image/png;base64,{img_str}"

def qr_image_url(payload: Optional[str]) -> Optional[str]:
    """
    Image affichable du QR de paiement.
    - Le service de paiement renvoie parfois déjà une image (data URL ou URL http): elle est conservée.
    - Sinon la charge utile brute est rendue en PNG.
    """
    if not payload:
        return None
    if payload.startswith(("data:image/", "http://", "https://")):
        return payload
    return generate_qr_code(payload)
