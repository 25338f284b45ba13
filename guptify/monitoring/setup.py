import logging
import time

from fastapi import Request
from fastapi.responses import JSONResponse
from prometheus_client import Counter, Histogram
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.types import ASGIApp

logger = logging.getLogger("guptify.access")
logger.setLevel(logging.INFO)

files_uploaded = Counter("guptify_files_uploaded_total", "Files uploaded")
upload_bytes = Counter("guptify_upload_bytes_total", "Bytes written to object storage by uploads")
files_deleted = Counter("guptify_files_deleted_total", "File records permanently deleted")
blob_removal_failures = Counter("guptify_blob_removal_failures_total", "Object removals that failed during deletion")
shares_created = Counter("guptify_shares_created_total", "Share links issued")
shares_redeemed = Counter("guptify_shares_redeemed_total", "Share links redeemed", ["outcome"])

cleanup_runs = Counter("guptify_cleanup_runs_total", "Cleanup loop runs")
cleanup_orphans_removed = Counter("guptify_cleanup_orphans_removed_total", "Orphaned objects removed by cleanup")
cleanup_shares_purged = Counter("guptify_cleanup_shares_purged_total", "Expired share rows purged by cleanup")
cleanup_failed_deletes = Counter("guptify_cleanup_failed_deletes_total", "Failed object deletes in cleanup")
cleanup_duration = Histogram("guptify_cleanup_duration_seconds", "Duration of a cleanup run in seconds")


def report_upload(size: int) -> None:
    files_uploaded.inc()
    upload_bytes.inc(size)


def report_deletion(deleted: int, failed_blobs: int) -> None:
    if deleted:
        files_deleted.inc(deleted)
    if failed_blobs:
        blob_removal_failures.inc(failed_blobs)


def report_share_created() -> None:
    shares_created.inc()


def report_share_redeemed(ok: bool) -> None:
    shares_redeemed.labels(outcome="ok" if ok else "invalid").inc()


def report_cleanup(orphans_removed: int, shares_purged: int, failed: int, duration: float) -> None:
    """Record cleanup metrics to Prometheus."""
    cleanup_runs.inc()
    if orphans_removed:
        cleanup_orphans_removed.inc(orphans_removed)
    if shares_purged:
        cleanup_shares_purged.inc(shares_purged)
    if failed:
        cleanup_failed_deletes.inc(failed)
    cleanup_duration.observe(duration)


def setup_monitoring(app: ASGIApp):
    Instrumentator().instrument(app).expose(app, endpoint="/api/metrics", include_in_schema=False)

    @app.middleware("http")
    async def monitor_requests(request: Request, call_next):
        start_time = time.time()
        response = None
        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception("Unhandled error: %s %s -> %s", request.method, request.url.path, e)
            response = JSONResponse(status_code=500, content={"error": "Internal Server Error"})
        finally:
            process_time = time.time() - start_time
            logger.info("method=%s path=%s status=%s duration=%.4fs",
                        request.method, request.url.path,
                        getattr(response, "status_code", "?"), process_time)
        return response
