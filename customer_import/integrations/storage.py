"""
Source-file access for imports.

Files live in S3-compatible object storage (AWS S3, Backblaze B2, MinIO, ...)
and are fetched with boto3. The "local" provider reads the same
``<bucket>/<key>`` paths from a directory on disk, which is what development
setups and the test-suite use.
"""
import logging
from pathlib import Path
from typing import Tuple

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from customer_import.core.config import settings

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class StorageConnectionError(StorageError):
    """Raised when storage connection fails."""
    pass


class StorageDownloadError(StorageError):
    """Raised when file download fails."""
    pass


def split_storage_path(storage_path: str) -> Tuple[str, str]:
    """
    Split ``"<bucket>/<key>"`` into its bucket and key.

    A path without a ``/`` is a key in the configured default bucket.
    """
    path = storage_path.strip().lstrip("/")
    bucket, sep, key = path.partition("/")
    if not sep or not key:
        return settings.storage_bucket_name, path
    return bucket, key


def get_storage_client():
    """
    Get S3-compatible storage client.

    Returns:
        boto3 S3 client configured for the storage provider

    Raises:
        StorageConnectionError: If the client cannot be created
    """
    config = Config(
        signature_version='s3v4',
        retries={'max_attempts': 3, 'mode': 'standard'},
        connect_timeout=10,
        read_timeout=60,
    )

    client_kwargs = {
        'service_name': 's3',
        'config': config,
    }
    # Fall back to the default boto3 credential chain when keys are not set.
    if settings.storage_access_key_id and settings.storage_secret_access_key:
        client_kwargs['aws_access_key_id'] = settings.storage_access_key_id
        client_kwargs['aws_secret_access_key'] = settings.storage_secret_access_key
    if settings.storage_endpoint_url:
        client_kwargs['endpoint_url'] = settings.storage_endpoint_url
    if settings.storage_region:
        client_kwargs['region_name'] = settings.storage_region

    try:
        return boto3.client(**client_kwargs)
    except (BotoCoreError, ValueError) as e:
        logger.error(f"Failed to create storage client: {e}")
        raise StorageConnectionError(f"Failed to connect to storage: {str(e)}")


def _download_local(bucket: str, key: str) -> bytes:
    root = Path(settings.storage_local_root).resolve()
    path = (root / bucket / key).resolve()
    if root not in path.parents:
        raise StorageDownloadError(f"Invalid storage path: {bucket}/{key}")
    try:
        return path.read_bytes()
    except FileNotFoundError:
        raise StorageDownloadError(f"File not found: {bucket}/{key}")
    except OSError as e:
        raise StorageDownloadError(f"Download failed: {str(e)}")


def download_file(storage_path: str) -> bytes:
    """
    Download a file from storage.

    Args:
        storage_path: ``"<bucket>/<key>"`` (e.g., "imports/1691432334-customers.csv")

    Returns:
        File content as bytes

    Raises:
        StorageDownloadError: If the file is missing or cannot be read
        StorageConnectionError: If storage cannot be reached
    """
    bucket, key = split_storage_path(storage_path)
    if not key:
        raise StorageDownloadError("Storage path is empty")

    if settings.storage_provider == "local":
        return _download_local(bucket, key)

    client = get_storage_client()
    try:
        response = client.get_object(Bucket=bucket, Key=key)
        return response['Body'].read()
    except ClientError as e:
        error_code = e.response.get('Error', {}).get('Code', 'Unknown')
        if error_code in ('NoSuchKey', '404', 'NoSuchBucket'):
            raise StorageDownloadError(f"File not found: {bucket}/{key}")
        logger.error(f"Storage download failed: {error_code} - {str(e)}")
        raise StorageDownloadError(f"Download failed: {str(e)}")
    except BotoCoreError as e:
        logger.error(f"Storage unreachable during download: {str(e)}")
        raise StorageConnectionError(f"Download failed: {str(e)}")
