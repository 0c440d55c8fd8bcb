"""
代码渲染 - HTTP client for the code-to-image service and PNG header parsing
"""
import struct
from typing import Optional

import httpx

from codeshot.core.config import Settings, get_settings
from codeshot.core.errors import RenderOrStorageError
from codeshot.models.snippets import ImageDimensions

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


def read_image_dimensions(image: bytes) -> Optional[ImageDimensions]:
    """Width/height from a PNG IHDR chunk, ``None`` for anything else."""
    if len(image) < 24 or not image.startswith(PNG_SIGNATURE) or image[12:16] != b"IHDR":
        return None
    width, height = struct.unpack(">II", image[16:24])
    if width == 0 or height == 0:
        return None
    return ImageDimensions(width=width, height=height)


class HttpRenderer:
    """``Renderer`` backed by an HTTP rendering service that answers with PNG bytes."""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings or get_settings()
        self.endpoint = self.settings.renderer_url
        self.client = client or httpx.AsyncClient(timeout=httpx.Timeout(self.settings.renderer_timeout))

    async def render(
        self,
        code: str,
        language: str,
        file_path: str,
        theme: str,
        show_line_numbers: bool = False,
        font_size: int = 14,
    ) -> bytes:
        payload = {
            "code": code,
            "language": language,
            "filePath": file_path,
            "theme": theme,
            "showLineNumbers": show_line_numbers,
            "fontSize": font_size,
        }
        try:
            response = await self.client.post(self.endpoint, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise RenderOrStorageError(str(e), "render", file_path=file_path)

        if not response.content:
            raise RenderOrStorageError("renderer returned an empty body", "render", file_path=file_path)
        return response.content

    async def close(self):
        await self.client.aclose()
