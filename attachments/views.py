import logging

from django.http import HttpResponse, HttpResponseRedirect, JsonResponse, StreamingHttpResponse
from django.middleware.csrf import get_token
from django.utils.http import content_disposition_header
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from .models import Disposition
from .services.access import get_access_gate
from .services.binding import DeferredUploadService
from .services.exceptions import (
    AlreadyBound,
    AttachmentError,
    AttachmentTooLarge,
    Forbidden,
    InvalidArgument,
    NotFound,
    StorageFailure,
)
from .services.registry import AttachmentRegistry
from .services.storage import get_disk

logger = logging.getLogger(__name__)

# Most specific first
ERROR_STATUS_CODES = (
    (AttachmentTooLarge, 413),
    (InvalidArgument, 400),
    (NotFound, 404),
    (AlreadyBound, 409),
    (Forbidden, 403),
    (StorageFailure, 503),
)


def error_response(exc: AttachmentError) -> JsonResponse:
    """Map an attachment error to a JSON error response."""
    for error_class, status in ERROR_STATUS_CODES:
        if isinstance(exc, error_class):
            return JsonResponse({'success': False, 'error': str(exc)}, status=status)
    return JsonResponse({'success': False, 'error': 'Attachment operation failed'}, status=500)


@require_POST
def dropzone_upload(request):
    """
    Upload endpoint for upload widgets.

    Stores the posted file as a pending attachment (or bound, when owner_type
    and owner_ref are posted too) and returns its description, including
    the external id needed to bind it later.
    """
    try:
        attachment = DeferredUploadService().upload(
            request,
            request.FILES.get('file'),
            disk=request.POST.get('disk') or None,
            title=request.POST.get('title', ''),
            description=request.POST.get('description', ''),
            slot=request.POST.get('slot', ''),
            owner_type=request.POST.get('owner_type') or None,
            owner_ref=request.POST.get('owner_ref') or None,
        )
    except AttachmentError as e:
        return error_response(e)
    except Exception:
        logger.exception("Dropzone upload failed")
        return JsonResponse({'success': False, 'error': 'Upload failed. Please try again.'}, status=500)

    payload = attachment.to_dict()
    payload['key'] = get_token(request)
    return JsonResponse(payload)


@require_http_methods(["DELETE"])
def dropzone_delete(request, external_id):
    """Delete a pending upload. Bound attachments are refused."""
    try:
        DeferredUploadService().delete_pending(request, external_id)
    except AttachmentError as e:
        return error_response(e)
    except Exception:
        logger.exception(f"Dropzone delete of attachment {external_id} failed")
        return JsonResponse({'success': False, 'error': 'Delete failed. Please try again.'}, status=500)

    return HttpResponse(status=204)


@require_GET
def download(request, external_id, filename):
    """
    Output endpoint.

    The filename path segment is cosmetic. The output gate runs before any
    byte is sent; disks with a public URL get a redirect instead of a stream.
    """
    disposition = request.GET.get('disposition', Disposition.ATTACHMENT)
    if disposition not in Disposition.values:
        disposition = Disposition.ATTACHMENT

    try:
        attachment = AttachmentRegistry().get_by_external_id(external_id)
        get_access_gate().check_output(attachment, request)

        disk = get_disk(attachment.storage_disk)
        public_url = disk.public_url(attachment.storage_key)
        if public_url:
            return HttpResponseRedirect(public_url)

        chunks = disk.get(attachment.storage_key)
    except AttachmentError as e:
        return error_response(e)
    except Exception:
        logger.exception(f"Output of attachment {external_id} failed")
        return HttpResponse("Download failed", status=500)

    response = StreamingHttpResponse(chunks, content_type=attachment.mime_type or 'application/octet-stream')
    response['Content-Disposition'] = content_disposition_header(
        disposition == Disposition.ATTACHMENT,
        attachment.original_filename,
    )
    response['Content-Length'] = attachment.size_bytes
    return response
