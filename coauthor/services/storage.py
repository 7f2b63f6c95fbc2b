# coauthor/services/storage.py
import logging
import time
from functools import lru_cache

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import UploadFile
from slugify import slugify

from coauthor.config import settings

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_s3_client():
    return boto3.client(
        "s3",
        endpoint_url=f"https://{settings.R2_ACCOUNT_ID}.r2.cloudflarestorage.com",
        aws_access_key_id=settings.R2_ACCESS_KEY_ID,
        aws_secret_access_key=settings.R2_SECRET_ACCESS_KEY,
        region_name="auto",
    )


def upload_book_cover(file: UploadFile, title: str) -> str:
    ext = file.filename.rsplit(".", 1)[-1].lower()
    key = f"book_covers/{slugify(title)}_{int(time.time())}.{ext}"

    get_s3_client().upload_fileobj(
        file.file,
        settings.R2_BUCKET_NAME,
        key,
        ExtraArgs={"ContentType": file.content_type},
    )
    return key


def delete_file(key: str) -> None:
    try:
        get_s3_client().delete_object(Bucket=settings.R2_BUCKET_NAME, Key=key)
    except (BotoCoreError, ClientError):
        logger.warning(f"Could not delete {key} from storage")



def cover_url(key: str, expires: int = 3600) -> str:
    """Short-lived read URL for a stored cover."""
    return get_s3_client().generate_presigned_url(
        "get_object",
        Params={"Bucket": settings.R2_BUCKET_NAME, "Key": key},
        ExpiresIn=expires,
    )
