from __future__ import annotations

"""
Transcoding orchestration on AWS Elemental MediaConvert.

Stateless: the engine is the source of truth for job state, which is pulled
on demand (`get_status`, `list_recent`). Nothing is cached or queued here.

Output layout (shared with the delivery signer through
`app.utils.renditions`):

    mp4  s3://<out-bucket>/<prefix><base>-mp4-<q>          -> .mp4 appended by the engine
    hls  s3://<out-bucket>/<prefix><base>-hls-<q>/index    -> index.m3u8 + segments
"""

import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional

from app.core.exceptions import ConfigurationError, InvalidArgument, UpstreamError
from app.schemas.media import (
    JobState,
    JobStatus,
    JobSummary,
    OutputFormat,
    OutputRequest,
    OutputSpec,
    Quality,
    TranscodeJob,
)
from app.utils.aws import normalize_key
from app.utils.renditions import quality_profile, rendition_destination, rendition_key
from app.utils.upstream import UpstreamPolicy, call_once, call_read

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = frozenset({OutputFormat.MP4, OutputFormat.HLS})
MAX_LIST_RESULTS = 20

AUDIO_SELECTOR = "Audio Selector 1"
HLS_SEGMENT_LENGTH = 10
GOP_SIZE_FRAMES = 90

_NOT_FOUND_CODES = ("NotFoundException", "NotFound")


def _audio_description() -> Dict[str, Any]:
    return {
        "AudioSourceName": AUDIO_SELECTOR,
        "CodecSettings": {
            "Codec": "AAC",
            "AacSettings": {
                "Bitrate": 128000,
                "CodingMode": "CODING_MODE_2_0",
                "SampleRate": 48000,
            },
        },
    }


def _video_description(quality: Quality) -> Dict[str, Any]:
    profile = quality_profile(quality)
    return {
        "Width": profile.width,
        "Height": profile.height,
        "CodecSettings": {
            "Codec": "H_264",
            "H264Settings": {
                "RateControlMode": "VBR",
                "Bitrate": profile.bitrate,
                "MaxBitrate": profile.max_bitrate,
                "GopSize": GOP_SIZE_FRAMES,
                "GopSizeUnits": "FRAMES",
            },
        },
    }


def _parse_state(raw: Any, *, job_id: Optional[str] = None) -> JobState:
    try:
        return JobState(str(raw))
    except ValueError as e:
        raise UpstreamError(
            "Transcoding engine reported an unknown job state",
            details={"state": raw, "job_id": job_id},
        ) from e


def _progress(raw: Any) -> Optional[int]:
    if raw is None:
        return None
    return max(0, min(100, int(raw)))


class TranscodingOrchestrator:
    """Builds, submits and inspects MediaConvert jobs."""

    def __init__(
        self,
        mediaconvert_client: Any,
        *,
        role_arn: Optional[str],
        input_bucket: str,
        output_bucket: Optional[str] = None,
        output_prefix: str = "",
        queue_arn: Optional[str] = None,
        policy: Optional[UpstreamPolicy] = None,
    ) -> None:
        if mediaconvert_client is None:
            raise ConfigurationError("MediaConvert client not configured")
        if not role_arn:
            raise ConfigurationError("MEDIACONVERT_ROLE_ARN not configured")
        if not input_bucket:
            raise ConfigurationError("AWS_BUCKET_NAME not configured")
        self._mc = mediaconvert_client
        self.role_arn = role_arn
        self.queue_arn = queue_arn
        self.input_bucket = input_bucket
        self.output_bucket = output_bucket or input_bucket
        self.output_prefix = output_prefix
        self._policy = policy or UpstreamPolicy()

    # ── Pure builders ─────────────────────────────────────────
    def build_output_specs(
        self,
        input_key: str,
        outputs: Iterable[OutputRequest | Dict[str, Any]],
    ) -> List[OutputSpec]:
        """Validate requested outputs and derive one `OutputSpec` each."""
        key = normalize_key(input_key)
        try:
            reqs = [o if isinstance(o, OutputRequest) else OutputRequest.model_validate(o) for o in (outputs or [])]
        except ValueError as e:
            raise InvalidArgument("Invalid output entry", details={"field": "outputs"}) from e
        if not reqs:
            raise InvalidArgument("At least one output is required", details={"field": "outputs"})

        unsupported = sorted({r.format.value for r in reqs if r.format not in SUPPORTED_FORMATS})
        if unsupported:
            raise InvalidArgument(
                f"Unsupported output format: {', '.join(unsupported)}",
                details={"unsupported_formats": unsupported},
            )

        seen = set()
        dupes = []
        for r in reqs:
            pair = (r.format, r.quality)
            if pair in seen:
                dupes.append({"format": r.format.value, "quality": r.quality.value})
            seen.add(pair)
        if dupes:
            raise InvalidArgument("Duplicate outputs requested", details={"duplicates": dupes})

        specs: List[OutputSpec] = []
        for r in reqs:
            profile = quality_profile(r.quality)
            specs.append(
                OutputSpec(
                    format=r.format,
                    quality=r.quality,
                    output_key=rendition_key(key, r.format, r.quality),
                    resolution=profile.resolution,
                    bitrate=profile.bitrates,
                )
            )
        return specs

    def _output_group(self, index: int, input_key: str, spec: OutputSpec) -> Dict[str, Any]:
        destination = rendition_destination(
            self.output_bucket, input_key, spec.format, spec.quality, self.output_prefix
        )
        output: Dict[str, Any] = {
            "VideoDescription": _video_description(spec.quality),
            "AudioDescriptions": [_audio_description()],
        }
        if spec.format is OutputFormat.MP4:
            output["ContainerSettings"] = {"Container": "MP4", "Mp4Settings": {}}
            return {
                "Name": f"MP4_{index}",
                "OutputGroupSettings": {
                    "Type": "FILE_GROUP_SETTINGS",
                    "FileGroupSettings": {"Destination": destination},
                },
                "Outputs": [output],
            }
        output["ContainerSettings"] = {"Container": "M3U8"}
        output["NameModifier"] = f"_{spec.quality.value}"
        return {
            "Name": f"HLS_{index}",
            "OutputGroupSettings": {
                "Type": "HLS_GROUP_SETTINGS",
                "HlsGroupSettings": {
                    "Destination": destination,
                    "SegmentLength": HLS_SEGMENT_LENGTH,
                    "MinSegmentLength": 0,
                },
            },
            "Outputs": [output],
        }

    def build_job_settings(self, input_key: str, specs: Iterable[OutputSpec]) -> Dict[str, Any]:
        """MediaConvert `Settings` document: one input, one output group per spec."""
        key = normalize_key(input_key)
        specs = list(specs)
        if not specs:
            raise InvalidArgument("At least one output is required", details={"field": "outputs"})
        return {
            "Inputs": [
                {
                    "FileInput": f"s3://{self.input_bucket}/{key}",
                    "AudioSelectors": {AUDIO_SELECTOR: {"DefaultSelection": "DEFAULT"}},
                    "VideoSelector": {},
                }
            ],
            "OutputGroups": [self._output_group(i, key, s) for i, s in enumerate(specs)],
        }

    # ── Engine calls ──────────────────────────────────────────
    async def submit(
        self,
        input_key: str,
        outputs: Iterable[OutputRequest | Dict[str, Any]],
        idempotency_token: Optional[str] = None,
    ) -> TranscodeJob:
        """
        Create a job. `idempotency_token` becomes the engine's
        `ClientRequestToken`; a fresh UUID is used when none is given.
        Never retried.
        """
        key = normalize_key(input_key)
        specs = self.build_output_specs(key, outputs)
        request: Dict[str, Any] = {
            "Role": self.role_arn,
            "Settings": self.build_job_settings(key, specs),
            "ClientRequestToken": idempotency_token or str(uuid.uuid4()),
        }
        if self.queue_arn:
            request["Queue"] = self.queue_arn

        resp = await call_once(self._mc.create_job, policy=self._policy, operation="create_job", **request)
        job = (resp or {}).get("Job") or {}
        job_id = job.get("Id")
        if not job_id:
            raise UpstreamError("Transcoding engine returned no job id", details={"input_key": key})
        state = _parse_state(job.get("Status") or JobState.SUBMITTED.value, job_id=job_id)
        logger.info("[Transcode] Job %s created for %s (%d outputs)", job_id, key, len(specs))
        return TranscodeJob(job_id=job_id, state=state)

    async def get_status(self, job_id: str) -> JobStatus:
        jid = str(job_id or "").strip()
        if not jid:
            raise InvalidArgument("job_id must not be empty", details={"field": "job_id"})
        resp = await call_read(
            self._mc.get_job,
            policy=self._policy,
            operation="get_job",
            not_found_codes=_NOT_FOUND_CODES,
            Id=jid,
        )
        job = (resp or {}).get("Job") or {}
        return JobStatus(
            state=_parse_state(job.get("Status"), job_id=jid),
            progress=_progress(job.get("JobPercentComplete")),
            error_message=job.get("ErrorMessage"),
        )

    async def list_recent(self, max_results: int = MAX_LIST_RESULTS) -> List[JobSummary]:
        """Most recent jobs first (ordering delegated to the engine)."""
        if isinstance(max_results, bool) or not isinstance(max_results, int) or not 1 <= max_results <= MAX_LIST_RESULTS:
            raise InvalidArgument(
                f"max_results must be between 1 and {MAX_LIST_RESULTS}",
                details={"max_results": max_results},
            )
        params: Dict[str, Any] = {"MaxResults": max_results, "Order": "DESCENDING"}
        if self.queue_arn:
            params["Queue"] = self.queue_arn
        resp = await call_read(self._mc.list_jobs, policy=self._policy, operation="list_jobs", **params)
        out: List[JobSummary] = []
        for j in (resp or {}).get("Jobs") or []:
            jid = j.get("Id")
            if not jid:
                raise UpstreamError("Transcoding engine returned a job without an id", details={"operation": "list_jobs"})
            out.append(
                JobSummary(
                    job_id=jid,
                    state=_parse_state(j.get("Status"), job_id=jid),
                    created_at=j.get("CreatedAt"),
                    progress=_progress(j.get("JobPercentComplete")),
                )
            )
        return out


__all__ = ["TranscodingOrchestrator", "SUPPORTED_FORMATS", "MAX_LIST_RESULTS"]
