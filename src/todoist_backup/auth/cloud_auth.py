"""Cloud storage authentication handling."""

import logging
from typing import Optional

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..config.settings import StoreConfig

logger = logging.getLogger(__name__)


class S3Auth:
    """Handle S3 authentication and client creation for any S3 compatible endpoint."""

    def __init__(
        self,
        endpoint_url: str,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        region: Optional[str] = None,
        verify_ssl: bool = True
    ):
        """Initialize S3 authentication.

        Args:
            endpoint_url: Endpoint of the S3 compatible service
            access_key_id: Access key ID
            secret_access_key: Secret access key
            region: Region name (optional for most S3 compatible services)
            verify_ssl: Use TLS for the connection
        """
        self.endpoint_url = endpoint_url
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.region = region
        self.verify_ssl = verify_ssl
        self._s3_client = None

    def get_s3_client(self):
        """Get authenticated S3 client.

        Returns:
            boto3 S3 client
        """
        if self._s3_client is None:
            kwargs = {
                'endpoint_url': self.endpoint_url,
                'region_name': self.region,
                'use_ssl': self.verify_ssl,
                'config': Config(signature_version='s3v4', s3={'addressing_style': 'path'}),
            }
            # Fall back to the default credential chain when no static keys are set
            if self.access_key_id and self.secret_access_key:
                kwargs['aws_access_key_id'] = self.access_key_id
                kwargs['aws_secret_access_key'] = self.secret_access_key
            self._s3_client = boto3.client('s3', **kwargs)

        return self._s3_client

    def ensure_bucket(self, bucket_name: str) -> bool:
        """Create the bucket when it does not exist yet.

        Returns:
            True if the bucket was created, False if it already existed
        """
        s3_client = self.get_s3_client()
        try:
            s3_client.head_bucket(Bucket=bucket_name)
            return False
        except ClientError as e:
            code = e.response.get('Error', {}).get('Code', '')
            if code not in ('404', 'NoSuchBucket', 'NotFound'):
                raise

        params = {'Bucket': bucket_name}
        if self.region and self.region != 'us-east-1':
            params['CreateBucketConfiguration'] = {'LocationConstraint': self.region}
        s3_client.create_bucket(**params)
        logger.info(f"Created bucket {bucket_name}")
        return True

    def test_connection(self, bucket_name: str) -> bool:
        """Test S3 connection by checking if bucket is accessible.

        Args:
            bucket_name: Name of S3 bucket to test

        Returns:
            True if connection successful, False otherwise
        """
        try:
            self.get_s3_client().head_bucket(Bucket=bucket_name)
            return True
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to connect to S3 bucket {bucket_name}: {e}")
            return False

    @classmethod
    def from_config(cls, config: StoreConfig) -> "S3Auth":
        """Create S3 auth from the store configuration."""
        return cls(
            endpoint_url=config.endpoint_url,
            access_key_id=config.access_key,
            secret_access_key=config.secret_key,
            region=config.region,
            verify_ssl=not config.insecure
        )
