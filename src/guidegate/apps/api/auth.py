import hmac

from fastapi import Depends, Header, HTTPException, Request, status

from guidegate.services.admission import AdmissionRuntime


def get_runtime(request: Request) -> AdmissionRuntime:
    return request.app.state.runtime


async def require_maintenance_token(
    runtime: AdmissionRuntime = Depends(get_runtime),
    x_guidegate_token: str | None = Header(default=None),
    authorization: str | None = Header(default=None),
) -> None:
    """
    Accept either X-GuideGate-Token or Authorization: Bearer <token>.
    Maintenance routes stay closed when no token is configured.
    """
    expected = runtime.settings.maintenance_token
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Maintenance endpoints are disabled",
        )

    token = None
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
    elif x_guidegate_token:
        token = x_guidegate_token

    if not token or not hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing X-GuideGate-Token",
        )
