# variable_editor/infrastructure/cloudinary/upload_file.py
from io import BytesIO
from typing import Optional
from PIL import Image
import cloudinary, cloudinary.uploader, cloudinary.utils
from variable_editor.config.settings import settings


# Configure once (supports CLOUDINARY_URL or split vars)
if settings.CLOUDINARY_CLOUD_NAME:
    cloudinary.config(
        cloud_name=settings.CLOUDINARY_CLOUD_NAME,
        api_key=settings.CLOUDINARY_API_KEY,
        api_secret=settings.CLOUDINARY_API_SECRET,
        secure=True,
    )
else:
    cloudinary.config(secure=True)

def encode_image(img: Image.Image, fmt: str = "png", quality: int = 88) -> bytes:
    fmt = (fmt or "png").lower()
    # Map to a valid Pillow format string
    if fmt in ("jpg", "jpeg"):
        # JPEG can't have alpha
        if img.mode != "RGB":
            img = img.convert("RGB")
        save_kwargs = dict(format="JPEG", quality=quality, optimize=True)
    elif fmt == "png":
        # PNG supports alpha; keep mode as-is
        save_kwargs = dict(format="PNG", optimize=True)
    else:
        save_kwargs = dict(format=fmt.upper())

    buf = BytesIO()
    img.save(buf, **save_kwargs)
    return buf.getvalue()

def upload_image_bytes(
    data: bytes,
    public_id: str,
    folder: str = "variable-editor",
    fmt: str = "png",
    overwrite: bool = True,
    tags: Optional[list[str]] = None,
) -> str:
    res = cloudinary.uploader.upload(
        BytesIO(data),
        resource_type="image",
        folder=folder,
        public_id=public_id,
        overwrite=overwrite,
        format=fmt,              # final extension in Cloudinary
        tags=tags or [],
    )
    return res["secure_url"]

def resolve_storage_url(reference: str) -> str:
    """Delivery URL of a raw asset (e.g. an uploaded SVG) stored under `reference`."""
    url, _ = cloudinary.utils.cloudinary_url(reference, resource_type="raw", secure=True)
    return url
