import logging
from azure.storage.blob import BlobServiceClient
from azure.core.exceptions import AzureError
from datetime import datetime, UTC

def utc_timestamp():
    return datetime.now(UTC).strftime("%Y%m%d_%H%M%S")

def download_blob_bytes(sas_url: str, container: str, blob_name: str) -> bytes:
    """
    Download a blob from Azure Blob Storage using SAS URL.

    Args:
        sas_url: SAS URL for the Azure Blob Storage account.
        container: Container holding the workbook (e.g., 'accessreview').
        blob_name: Blob path inside the container (e.g., 'Logs_for_Analysis_1.xlsx').

    Returns:
        bytes: Blob content.
    """
    logger = logging.getLogger(__name__)
    try:
        blob_service_client = BlobServiceClient(account_url=sas_url)
        container_client = blob_service_client.get_container_client(container)

        logger.info(f"Downloading blob {container}/{blob_name}")
        content = container_client.download_blob(blob_name).readall()
        logger.info(f"Downloaded {len(content)} bytes from {container}/{blob_name}")
        return content

    except AzureError as e:
        logger.error(f"Failed to download {container}/{blob_name}: {str(e)}")
        raise
