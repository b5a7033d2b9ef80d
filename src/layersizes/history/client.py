"""HTTP client for a remote image history store."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping

import requests

from layersizes import __version__
from layersizes.history.merge import merge_history_entry
from layersizes.models import DirectoryNode, ImageHistory, ImageHistoryEntry

LOGGER = logging.getLogger(__name__)

USER_AGENT = f"layersizes-client/{__version__}"
DEFAULT_TIMEOUT = 10


class HistoryClientError(RuntimeError):
    """The history store answered with a non-success status."""

    def __init__(self, message: str, status_code: int, body: str) -> None:
        super().__init__(f"{message}, got status {status_code} and body: {body}")
        self.status_code = status_code
        self.body = body


class HistoryClient:
    """Talks to the ``/history`` route of a layersizes server."""

    def __init__(self, base_url: str, *, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.base_url = base_url
        self.timeout = timeout
        self._headers = {"User-Agent": USER_AGENT}

    def _get(self, params: Mapping[str, Any] | None, error: str) -> Any:
        response = requests.get(
            self.base_url, params=params, headers=self._headers, timeout=self.timeout
        )
        if response.status_code != 200:
            raise HistoryClientError(error, response.status_code, response.text)
        return response.json()

    def fetch_all_images(self) -> List[Dict[str, Any]]:
        return self._get(None, "Failed to fetch all images")

    def fetch_image_history(
        self, *, name: str | None = None, image_id: int | None = None
    ) -> List[ImageHistory] | ImageHistory:
        """Histories stored under ``name``, or the single one with ``image_id``."""
        if (name is None) == (image_id is None):
            raise ValueError("Exactly one of name or image_id must be given")

        if image_id is not None:
            data = self._get({"id": image_id}, f"Failed to fetch the image with id={image_id}")
            return ImageHistory.from_dict(data)

        data = self._get({"name": name}, f"Failed to fetch the image with name={name}")
        return [ImageHistory.from_dict(item) for item in data]

    def _send(self, method: str, image_history: ImageHistory) -> ImageHistory:
        response = requests.request(
            method,
            self.base_url,
            json=image_history.to_dict(),
            headers=self._headers,
            timeout=self.timeout,
        )
        if response.status_code != 200:
            raise HistoryClientError(
                f"Failed to store the history of {image_history.name}",
                response.status_code,
                response.text,
            )
        return ImageHistory.from_dict(response.json())

    def create(self, image_history: ImageHistory) -> ImageHistory:
        return self._send("PUT", image_history)

    def update(self, image_history: ImageHistory) -> ImageHistory:
        return self._send("POST", image_history)

    def save_history(
        self,
        image_name: str,
        digest: str,
        tag: str,
        contents: Mapping[str, DirectoryNode],
        inspect_info: Mapping[str, Any] | None = None,
    ) -> ImageHistory:
        """Merge one analysed image into the stored history of ``image_name``.

        The history is created if the store has none for this name yet.
        """
        existing: ImageHistory | None = None
        try:
            matches = self.fetch_image_history(name=image_name)
        except HistoryClientError as exc:
            if exc.status_code != 404:
                raise
            LOGGER.debug("No stored history for %s yet", image_name)
        else:
            if matches:
                existing = matches[0]

        entry = ImageHistoryEntry(
            tags=[tag] if tag else [],
            contents=dict(contents),
            inspect_info=dict(inspect_info or {}),
        )
        merged = merge_history_entry(existing, image_name, digest, entry)

        if merged.id is None:
            LOGGER.info("Creating history for %s", image_name)
            return self.create(merged)
        LOGGER.info("Updating history %d for %s", merged.id, image_name)
        return self.update(merged)
