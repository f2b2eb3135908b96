# backend/tutordesk/api/dependencies/tutor.py
"""
Acting-tutor resolution.

The tutor id is read once from the X-Tutor-Id header and passed explicitly
to every service call. Authentication happens upstream of this service.
"""

import logging

from fastapi import Header, HTTPException, status

logger = logging.getLogger(__name__)

TUTOR_ID_MAX_LENGTH = 26


def get_tutor_id(x_tutor_id: str = Header(..., alias="X-Tutor-Id")) -> str:
    """Validated tutor id from the request headers."""
    tutor_id = x_tutor_id.strip()
    if not tutor_id or len(tutor_id) > TUTOR_ID_MAX_LENGTH:
        logger.info("Rejected request with malformed X-Tutor-Id header")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "message": "X-Tutor-Id header must be a non-empty id of at most 26 characters",
                "code": "INVALID_TUTOR_ID",
            },
        )
    return tutor_id
