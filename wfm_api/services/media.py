# wfm_api/services/media.py
"""
Outbound calls to the media store and the reverse geocoder.

Photo upload is on the critical path of attendance and overtime transitions:
any failure raises ExternalServiceError and the caller must not commit.
Geocoding is best effort and returns None on any failure.
"""
from __future__ import annotations

import base64
import binascii
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

import requests
from flask import current_app

from wfm_api.common.errors import ExternalServiceError, ValidationError

log = logging.getLogger(__name__)


@dataclass
class GeoPoint:
    lat: Optional[float] = None
    lon: Optional[float] = None
    accuracy_m: Optional[float] = None

    @classmethod
    def from_payload(cls, d: Optional[dict]) -> "GeoPoint":
        d = d or {}
        def _f(k):
            v = d.get(k)
            if v in (None, ""):
                return None
            try:
                return float(v)
            except (TypeError, ValueError):
                raise ValidationError(f"Invalid {k}: {v!r}")
        lat = _f("lat") if "lat" in d else _f("latitude")
        lon = _f("lon") if "lon" in d else _f("longitude")
        if lat is not None and not -90 <= lat <= 90:
            raise ValidationError(f"Latitude out of range: {lat}")
        if lon is not None and not -180 <= lon <= 180:
            raise ValidationError(f"Longitude out of range: {lon}")
        return cls(lat=lat, lon=lon, accuracy_m=_f("accuracy") if "accuracy" in d else _f("accuracy_m"))

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lon is not None

    def raw_label(self) -> Optional[str]:
        if not self.has_coordinates:
            return None
        return f"{self.lat:.6f}, {self.lon:.6f}"


def decode_photo(value) -> bytes:
    """Accept raw bytes or a base64 string (optionally a data: URL)."""
    if isinstance(value, (bytes, bytearray)):
        data = bytes(value)
    elif isinstance(value, str):
        s = value.split(",", 1)[1] if value.startswith("data:") else value
        try:
            data = base64.b64decode(s, validate=True)
        except (binascii.Error, ValueError):
            raise ValidationError("Photo is not valid base64")
    else:
        data = b""
    if not data:
        raise ValidationError("Photo is required")
    return data


class MediaClient:
    def __init__(self, upload_url: Optional[str], geocoder_url: Optional[str] = None,
                 api_key: Optional[str] = None, timeout: float = 10):
        self.upload_url = upload_url
        self.geocoder_url = geocoder_url
        self.api_key = api_key
        self.timeout = timeout

    def _headers(self):
        return {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}

    def upload_photo(self, content: bytes, *, folder: str = "attendance") -> str:
        """Store the image and return its durable URL."""
        if not self.upload_url:
            raise ExternalServiceError("MEDIA_NOT_CONFIGURED", "Media upload endpoint is not configured")
        name = f"{folder}/{uuid.uuid4().hex}.jpg"
        try:
            resp = requests.post(
                self.upload_url,
                headers=self._headers(),
                files={"file": (name, content, "image/jpeg")},
                data={"folder": folder},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            url = (resp.json() or {}).get("url")
        except (requests.RequestException, ValueError) as e:
            log.error("photo upload failed: %s", e)
            raise ExternalServiceError("PHOTO_UPLOAD_FAILED", f"Photo upload failed: {e}")
        if not url:
            raise ExternalServiceError("PHOTO_UPLOAD_FAILED", "Media store returned no URL")
        return url

    def reverse_geocode(self, lat: float, lon: float) -> Optional[str]:
        if not self.geocoder_url:
            return None
        try:
            resp = requests.get(
                self.geocoder_url,
                params={"lat": lat, "lon": lon, "format": "json"},
                headers=self._headers(),
                timeout=self.timeout,
            )
            resp.raise_for_status()
            body = resp.json() or {}
        except (requests.RequestException, ValueError) as e:
            log.warning("reverse geocode failed for %s,%s: %s", lat, lon, e)
            return None
        return body.get("display_name") or body.get("formatted_address")


def get_media_client() -> MediaClient:
    client = current_app.extensions.get("media_client")
    if client is None:
        client = MediaClient(
            upload_url=current_app.config.get("MEDIA_UPLOAD_URL"),
            geocoder_url=current_app.config.get("GEOCODER_URL"),
            api_key=current_app.config.get("MEDIA_API_KEY"),
            timeout=float(current_app.config.get("EXTERNAL_HTTP_TIMEOUT", 10)),
        )
        current_app.extensions["media_client"] = client
    return client


@dataclass
class Evidence:
    photo_url: str
    point: GeoPoint
    address: Optional[str]


def capture_evidence(photo, point: GeoPoint, *, folder: str) -> Evidence:
    """
    Upload the photo (fatal on failure) and resolve the address (best effort,
    falls back to the raw coordinates).
    """
    client = get_media_client()
    url = client.upload_photo(decode_photo(photo), folder=folder)
    address = None
    if point.has_coordinates:
        address = client.reverse_geocode(point.lat, point.lon) or point.raw_label()
    return Evidence(photo_url=url, point=point, address=address)
