from fastapi import HTTPException


def _auth_401(code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=401,
        detail={"code": code, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def _forbidden_403(message: str) -> HTTPException:
    return HTTPException(status_code=403, detail={"code": "FORBIDDEN", "message": message})


def abort(status_code: int, code: str, message: str) -> None:
    raise HTTPException(status_code=status_code, detail={"code": code, "message": message})


# codes a service can report, and the HTTP status each one maps to
STATUS_BY_CODE = {
    "NOT_FOUND": 404,
    "CONFLICT": 409,
    "ALREADY_EXISTS": 409,
    "ALREADY_ASSIGNED": 409,
    "SAME_LOCATION": 409,
    "INVALID_CREDENTIALS": 401,
    "INTERNAL_ERROR": 500,
}


def raise_for_result(result) -> None:
    """Turn a failed ServiceResult into the matching HTTP error."""
    if result.success:
        return
    code = result.code or "BAD_REQUEST"
    status_code = STATUS_BY_CODE.get(code, 400)
    if code == "INVALID_CREDENTIALS":
        raise _auth_401(code, result.message)
    abort(status_code, code, result.message)
