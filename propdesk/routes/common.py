import uuid

from fastapi import HTTPException, status


def parse_uuid(value: str, label: str = "id") -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": {"code": "INVALID_ID", "message": f"Invalid {label}"}},
        )


def iso(value) -> str:
    return value.isoformat() if value else ""
