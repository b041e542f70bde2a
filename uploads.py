import base64
import logging
from typing import List

import requests
from fastapi import Depends, UploadFile

from config import AppConfig, get_config

logger = logging.getLogger(__name__)


class ImageUploader:
    """Pushes image files to the hosting API and returns their public URLs."""

    def __init__(self, api_key: str, upload_url: str, timeout: float = 30):
        self.api_key = api_key
        self.upload_url = upload_url
        self.timeout = timeout

    def upload(self, files: List[UploadFile]) -> List[str]:
        urls = []
        for file in files:
            content = base64.b64encode(file.file.read()).decode("ascii")
            response = requests.post(
                self.upload_url,
                params={"key": self.api_key},
                data={"image": content},
                timeout=self.timeout,
            )
            response.raise_for_status()
            urls.append(response.json()["data"]["url"])
        logger.info("Uploaded %d image(s)", len(urls))
        return urls


def get_uploader(config: AppConfig = Depends(get_config)) -> ImageUploader:
    return ImageUploader(config.imgbb_api_key, config.imgbb_upload_url)
