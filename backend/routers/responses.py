"""
SmartPark Reservation System - Error Responses
Traduction des rejets du cœur de réservation en réponses HTTP.
"""

from fastapi.responses import JSONResponse

from models.reservation import ErrorKind, ErrorResponse, Rejected


def rejection_response(rejection: Rejected) -> JSONResponse:
    """Corps ``{"errorKind", "detail"}`` avec le code HTTP du type d'erreur."""
    body = ErrorResponse(error_kind=rejection.error_kind, detail=rejection.detail)
    return JSONResponse(
        status_code=rejection.error_kind.http_status,
        content=body.model_dump(mode="json", by_alias=True)
    )


def storage_unavailable(message: str) -> JSONResponse:
    """Erreur de lecture du stockage: message fixe, jamais le texte de l'exception."""
    return rejection_response(
        Rejected(error_kind=ErrorKind.ALLOCATION_FAILED, detail=message)
    )
