"""
Basic HttpClient example using xhr_core.

This example demonstrates queued requests, callback delivery and a
multipart upload with progress reporting.
"""

import asyncio
import logging
import os
import tempfile

from xhr_core import HttpClient, MultipartForm

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def log_response(response):
    logger.info(f"{response.url} -> {response.status_code} {response.status_text}")
    logger.info(f"Response body length: {len(response.text)} characters")


def log_error(error):
    logger.error(f"Request failed: {error.kind.name} during {error.stage.value}")


def log_progress(progress):
    logger.info(
        f"Uploading {os.path.basename(progress.file)} "
        f"({progress.file_number}/{progress.files_count}): {progress.fraction:.0%}"
    )


async def main():
    async with HttpClient("http://httpbin.org") as client:
        client.on_response(log_response)
        client.on_error(log_error)
        client.on_upload_progress(log_progress)

        client.get("/get")
        client.post("/post", {"message": "Hello, World!"})

        with tempfile.NamedTemporaryFile(suffix=".txt", delete=False) as handle:
            handle.write(b"x" * 4096)
        try:
            form = MultipartForm().add_field("title", "example").add_file("file", handle.name)
            client.post("/post", form)
            await client.join()
        finally:
            os.unlink(handle.name)

        # Refused connections are reported through the error callback
        client.get("http://127.0.0.1:9/")

    # Let the event loop deliver the last callbacks
    await asyncio.sleep(0)


if __name__ == "__main__":
    asyncio.run(main())
