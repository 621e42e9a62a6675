from __future__ import annotations

"""
CloudFront signed read URLs for originals and renditions.

- Canned policy (`DateLessThan` only), RSA-SHA1 with PKCS#1 v1.5 padding as
  CloudFront requires, via botocore's `CloudFrontSigner` + `cryptography`.
- Key material is loaded and validated once at construction; a missing or
  unparsable key is a `ConfigurationError` (startup failure).
- Rendition paths come from `app.utils.renditions.rendition_object_key`, the
  same derivation the transcoding orchestrator uses for its destinations.
- No caching: every call re-signs.
"""

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Iterable, Optional
from urllib.parse import quote

from botocore.signers import CloudFrontSigner
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.serialization import load_pem_private_key

from app.core.config import Settings, normalize_pem
from app.core.exceptions import ConfigurationError, InvalidArgument
from app.schemas.media import OutputFormat, Quality, RenditionFormat, SignedUrl
from app.utils.aws import normalize_key
from app.utils.renditions import rendition_object_key

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN = 3600
MAX_EXPIRES_IN = 7 * 24 * 3600


def _load_private_key(pem: Optional[str], path: Optional[str]) -> rsa.RSAPrivateKey:
    raw = normalize_pem(pem)
    if not raw and path:
        try:
            raw = Path(path).read_text(encoding="utf-8").strip()
        except OSError as e:
            raise ConfigurationError(
                "CloudFront private key file is not readable",
                details={"path": path},
            ) from e
    if not raw:
        raise ConfigurationError("CloudFront private key not configured")
    try:
        key = load_pem_private_key(raw.encode("utf-8"), password=None)
    except (ValueError, TypeError) as e:
        raise ConfigurationError("CloudFront private key could not be parsed") from e
    if not isinstance(key, rsa.RSAPrivateKey):
        raise ConfigurationError("CloudFront private key must be an RSA key")
    return key


class DeliverySigner:
    """Issues CloudFront signed URLs for one distribution."""

    def __init__(
        self,
        *,
        domain: Optional[str],
        key_pair_id: Optional[str],
        private_key_pem: Optional[str] = None,
        private_key_path: Optional[str] = None,
        output_prefix: str = "",
    ) -> None:
        d = (domain or "").strip().rstrip("/")
        if not d:
            raise ConfigurationError("CLOUDFRONT_DOMAIN not configured")
        if not (key_pair_id or "").strip():
            raise ConfigurationError("CLOUDFRONT_KEY_PAIR_ID not configured")
        self.base_url = d if d.startswith(("http://", "https://")) else f"https://{d}"
        self.key_pair_id = key_pair_id.strip()
        self.output_prefix = output_prefix
        self._private_key = _load_private_key(private_key_pem, private_key_path)
        self._signer = CloudFrontSigner(self.key_pair_id, self._rsa_signer)

    @classmethod
    def from_settings(cls, s: Settings) -> "DeliverySigner":
        pem = s.CLOUDFRONT_PRIVATE_KEY_PEM
        return cls(
            domain=s.cdn_base_url,
            key_pair_id=s.CLOUDFRONT_KEY_PAIR_ID,
            private_key_pem=pem.get_secret_value() if pem is not None else None,
            private_key_path=s.CLOUDFRONT_PRIVATE_KEY_PATH,
            output_prefix=s.TRANSCODE_OUTPUT_PREFIX,
        )

    def _rsa_signer(self, message: bytes) -> bytes:
        return self._private_key.sign(message, padding.PKCS1v15(), hashes.SHA1())

    @property
    def cloudfront_signer(self) -> CloudFrontSigner:
        return self._signer

    def _resource_url(self, key: str) -> str:
        return f"{self.base_url}/{quote(normalize_key(key), safe='/')}"

    def sign_url(self, key: str, expires_in: int = DEFAULT_EXPIRES_IN) -> SignedUrl:
        """Signed GET for `key`, valid for `expires_in` seconds (1 s .. 7 days)."""
        if isinstance(expires_in, bool) or not isinstance(expires_in, int) or not 1 <= expires_in <= MAX_EXPIRES_IN:
            raise InvalidArgument(
                f"expires_in must be between 1 and {MAX_EXPIRES_IN} seconds",
                details={"expires_in": expires_in},
            )
        # CloudFront expiry has one-second resolution
        expires_at = datetime.now(timezone.utc).replace(microsecond=0) + timedelta(seconds=expires_in)
        url = self._signer.generate_presigned_url(self._resource_url(key), date_less_than=expires_at)
        logger.debug("[CDN] Signed URL issued key=%s expires_in=%d", key, expires_in)
        return SignedUrl(url=url, expires_at=expires_at)

    def sign_rendition_urls(
        self,
        input_key: str,
        qualities: Iterable[Quality | str],
        format_filter: RenditionFormat | str = RenditionFormat.BOTH,
        expires_in: int = DEFAULT_EXPIRES_IN,
    ) -> Dict[str, Dict[str, SignedUrl]]:
        """
        Signed URLs for every requested rendition of `input_key`.

        Returns `{"mp4": {quality: SignedUrl}, "hls": {quality: SignedUrl}}`
        restricted to the formats selected by `format_filter`.
        """
        qs = list(dict.fromkeys(Quality(q) for q in (qualities or [])))
        if not qs:
            raise InvalidArgument("At least one quality is required", details={"field": "qualities"})
        ff = RenditionFormat(format_filter)
        formats = {
            RenditionFormat.MP4: [OutputFormat.MP4],
            RenditionFormat.HLS: [OutputFormat.HLS],
            RenditionFormat.BOTH: [OutputFormat.MP4, OutputFormat.HLS],
        }[ff]

        out: Dict[str, Dict[str, SignedUrl]] = {}
        for fmt in formats:
            out[fmt.value] = {
                q.value: self.sign_url(rendition_object_key(input_key, fmt, q, self.output_prefix), expires_in)
                for q in qs
            }
        return out

    def __repr__(self) -> str:  # pragma: no cover
        return f"DeliverySigner(base_url={self.base_url}, key_pair_id={self.key_pair_id})"


__all__ = ["DeliverySigner", "DEFAULT_EXPIRES_IN", "MAX_EXPIRES_IN"]
