"""
Payment proof storage on Cloudflare R2
"""

import base64
import binascii
import logging
import re
import uuid
from typing import Optional

import boto3
from botocore.config import Config

from ..config import R2_ACCESS_KEY_ID, R2_ACCOUNT_ID, R2_BUCKET_NAME, R2_SECRET_ACCESS_KEY

logger = logging.getLogger(__name__)

# Presigned URL expiration time (7 days, the S3 maximum)
PRESIGNED_URL_EXPIRATION = 7 * 24 * 3600

# Payment proofs are screenshots or scanned receipts
ALLOWED_PROOF_TYPES = [
    "image/png",
    "image/jpeg",
    "image/jpg",
    "image/webp",
    "image/heic",
    "image/heif",
    "application/pdf",
]
MAX_PROOF_BYTES = 5 * 1024 * 1024

DATA_URL_PATTERN = re.compile(r"^data:(?P<type>[\w.+-]+/[\w.+-]+);base64,(?P<data>.+)$", re.DOTALL)

EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/webp": "webp",
    "image/heic": "heic",
    "image/heif": "heif",
    "application/pdf": "pdf",
}


def r2_configured() -> bool:
    return bool(R2_ACCOUNT_ID and R2_ACCESS_KEY_ID and R2_SECRET_ACCESS_KEY)


def get_r2_client():
    """Create and return an R2 client."""
    return boto3.client(
        "s3",
        endpoint_url=f"https://{R2_ACCOUNT_ID}.r2.cloudflarestorage.com",
        aws_access_key_id=R2_ACCESS_KEY_ID,
        aws_secret_access_key=R2_SECRET_ACCESS_KEY,
        config=Config(signature_version="s3v4"),
    )


def generate_presigned_url(key: str, expiration: int = PRESIGNED_URL_EXPIRATION) -> str:
    """Generate a presigned URL for viewing a stored payment proof."""
    r2 = get_r2_client()
    return r2.generate_presigned_url(
        "get_object",
        Params={"Bucket": R2_BUCKET_NAME, "Key": key, "ResponseContentDisposition": "inline"},
        ExpiresIn=expiration,
    )


def decode_data_url(data_url: str, declared_type: Optional[str] = None) -> tuple[bytes, str]:
    """
    Split a base64 data URL (or bare base64 payload) into bytes and content type.

    Raises:
        ValueError: If the payload is not valid base64, too large, or of a disallowed type
    """
    match = DATA_URL_PATTERN.match(data_url.strip())
    if match:
        content_type, payload = match.group("type"), match.group("data")
    else:
        content_type, payload = declared_type or "", data_url.strip()

    content_type = content_type.lower()
    if content_type not in ALLOWED_PROOF_TYPES:
        raise ValueError(f"Unsupported payment proof type: {content_type or 'unknown'}")

    try:
        contents = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError("Payment proof is not valid base64") from e

    if len(contents) > MAX_PROOF_BYTES:
        raise ValueError("Payment proof exceeds 5MB")

    return contents, content_type


def upload_payment_proof(
    request_id: str, data_url: str, file_name: Optional[str], file_type: Optional[str]
) -> dict:
    """
    Store a payment proof for a service request.

    Returns:
        {"url", "key", "fileName", "fileType"} to be saved on the request
    """
    contents, content_type = decode_data_url(data_url, file_type)
    key = f"payment-proofs/{request_id}/{uuid.uuid4()}.{EXTENSIONS[content_type]}"

    r2 = get_r2_client()
    r2.put_object(
        Bucket=R2_BUCKET_NAME,
        Key=key,
        Body=contents,
        ContentType=content_type,
    )
    logger.info(f"✅ Payment proof uploaded for request {request_id}: {key}")

    return {
        "url": generate_presigned_url(key),
        "key": key,
        "fileName": file_name,
        "fileType": file_type or content_type,
    }
