"""
Upload, download and image builder routes shared by models and bentos.

Both artifact routers call ``add_transfer_routes`` with a dependency that
resolves the artifact from the path and one that builds its service.
"""
import logging
import tempfile
from typing import Any, Callable, List

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from starlette.concurrency import run_in_threadpool

from deployhub.domain.enums import UploadStatus
from deployhub.domain.errors import ValidationError
from deployhub.schemas.api_schemas import (
    CompleteMultipartUpload,
    FinishUpload,
    MultipartUploadStarted,
    PodSchema,
    PresignMultipartUploadPart,
    PresignedUrl,
)
from deployhub.services.artifacts import ArtifactService

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024
# Request bodies larger than this spill from memory to a temporary file
_SPOOL_MAX_SIZE = 16 * 1024 * 1024


def _iter_stream(stream):
    try:
        while True:
            chunk = stream.read(_CHUNK_SIZE)
            if not chunk:
                break
            yield chunk
    finally:
        stream.close()


def add_transfer_routes(
    router: APIRouter,
    path: str,
    get_artifact: Callable[..., Any],
    get_service: Callable[..., ArtifactService],
    to_schema: Callable[[Any, list], Any],
    response_model: Any,
) -> None:
    """Register the transfer endpoints under ``path`` on ``router``."""

    def start_upload(artifact=Depends(get_artifact), service: ArtifactService = Depends(get_service)):
        """Mark the artifact as uploading, before a presigned or multipart upload."""
        service.start_upload(artifact)
        return to_schema(artifact, service.list_labels(artifact))

    def finish_upload(
        body: FinishUpload,
        artifact=Depends(get_artifact),
        service: ArtifactService = Depends(get_service),
    ):
        try:
            status = UploadStatus(body.status)
        except ValueError as e:
            raise ValidationError(f"Unknown upload status '{body.status}'") from e
        service.finish_upload(artifact, status, body.reason)
        return to_schema(artifact, service.list_labels(artifact))

    async def upload(
        request: Request,
        artifact=Depends(get_artifact),
        service: ArtifactService = Depends(get_service),
    ):
        """Stream the request body into the object store."""
        await run_in_threadpool(service.start_upload, artifact)
        with tempfile.SpooledTemporaryFile(max_size=_SPOOL_MAX_SIZE) as spool:
            size = 0
            async for chunk in request.stream():
                spool.write(chunk)
                size += len(chunk)
            spool.seek(0)
            try:
                await run_in_threadpool(service.upload, artifact, spool, size)
            except Exception as e:
                logger.error(f"Upload of {service.get_tag(artifact)} failed: {e}")
                await run_in_threadpool(service.finish_upload, artifact, UploadStatus.FAILED, str(e))
                raise
        await run_in_threadpool(service.finish_upload, artifact, UploadStatus.SUCCESS)
        return to_schema(artifact, service.list_labels(artifact))

    def download(artifact=Depends(get_artifact), service: ArtifactService = Depends(get_service)):
        stream = service.download(artifact)
        filename = service.get_s3_object_name(artifact).rsplit("/", 1)[-1]
        return StreamingResponse(
            _iter_stream(stream),
            media_type="application/octet-stream",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    def presign_upload_url(artifact=Depends(get_artifact), service: ArtifactService = Depends(get_service)):
        return PresignedUrl(url=service.presign_upload_url(artifact))

    def presign_download_url(artifact=Depends(get_artifact), service: ArtifactService = Depends(get_service)):
        return PresignedUrl(url=service.presign_download_url(artifact))

    def start_multipart_upload(artifact=Depends(get_artifact), service: ArtifactService = Depends(get_service)):
        return MultipartUploadStarted(upload_id=service.start_multipart_upload(artifact))

    def presign_multipart_upload_url(
        body: PresignMultipartUploadPart,
        artifact=Depends(get_artifact),
        service: ArtifactService = Depends(get_service),
    ):
        return PresignedUrl(url=service.presign_multipart_upload_url(artifact, body.part_number, body.upload_id))

    def complete_multipart_upload(
        body: CompleteMultipartUpload,
        artifact=Depends(get_artifact),
        service: ArtifactService = Depends(get_service),
    ):
        parts = [{"PartNumber": part.part_number, "ETag": part.etag} for part in body.parts]
        service.complete_multipart_upload(artifact, body.upload_id, parts)
        service.finish_upload(artifact, UploadStatus.SUCCESS)
        return to_schema(artifact, service.list_labels(artifact))

    def list_image_builder_pods(artifact=Depends(get_artifact), service: ArtifactService = Depends(get_service)):
        return [PodSchema(**pod) for pod in service.list_image_builder_pods(artifact)]

    router.add_api_route(f"{path}/start_upload", start_upload, methods=["PATCH"], response_model=response_model)
    router.add_api_route(f"{path}/finish_upload", finish_upload, methods=["PATCH"], response_model=response_model)
    router.add_api_route(f"{path}/upload", upload, methods=["PUT"], response_model=response_model)
    router.add_api_route(f"{path}/download", download, methods=["GET"])
    router.add_api_route(
        f"{path}/presign_upload_url", presign_upload_url, methods=["PATCH"], response_model=PresignedUrl,
    )
    router.add_api_route(
        f"{path}/presign_download_url", presign_download_url, methods=["PATCH"], response_model=PresignedUrl,
    )
    router.add_api_route(
        f"{path}/start_multipart_upload", start_multipart_upload, methods=["PATCH"],
        response_model=MultipartUploadStarted,
    )
    router.add_api_route(
        f"{path}/presign_multipart_upload_url", presign_multipart_upload_url, methods=["PATCH"],
        response_model=PresignedUrl,
    )
    router.add_api_route(
        f"{path}/complete_multipart_upload", complete_multipart_upload, methods=["PATCH"],
        response_model=response_model,
    )
    router.add_api_route(
        f"{path}/image_builder_pods", list_image_builder_pods, methods=["GET"], response_model=List[PodSchema],
    )
