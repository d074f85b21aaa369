from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError
from starlette.concurrency import run_in_threadpool

from guidegate.apps.api.auth import get_runtime, require_maintenance_token
from guidegate.services.admission import (
    AdmissionReason,
    AdmissionRuntime,
    InvalidInputError,
    credential_from_params,
)

router = APIRouter(prefix="/api/nfc", tags=["nfc"])

_log = logging.getLogger("guidegate.api")

_DECISION_STATUS = {
    AdmissionReason.EXISTING_DEVICE: 200,
    AdmissionReason.UNDER_LIMIT: 200,
    AdmissionReason.INVALID_CODE: 403,
    AdmissionReason.DEVICE_LIMIT_EXCEEDED: 403,
    AdmissionReason.STORE_UNAVAILABLE: 503,
}


class ValidateReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    uid: str | None = None
    device_fingerprint: str | None = Field(default=None, alias="deviceFingerprint")
    validation_code: str | None = Field(
        default=None, validation_alias=AliasChoices("validationCode", "vc", "validation_code")
    )
    s: str | None = Field(default=None, description="Compact '<uid>:<code>' form printed on tags")
    max_devices: int | None = Field(default=None, alias="maxDevices", ge=1)


class CleanupReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    uid: str | None = None
    max_age: int | None = Field(default=None, alias="maxAge", ge=0, description="Milliseconds")


async def _read_body(request: Request, model: type[BaseModel]) -> Any:
    try:
        payload_raw = await request.json()
    except ValueError as exc:
        raise InvalidInputError("request body must be JSON") from exc
    if not isinstance(payload_raw, dict):
        raise InvalidInputError("request body must be a JSON object")
    try:
        return model.model_validate(payload_raw)
    except ValidationError as exc:
        fields = [".".join(str(part) for part in err.get("loc", ())) for err in exc.errors()]
        raise InvalidInputError("request body failed validation", fields=fields) from exc


@router.post("/validate")
async def validate(request: Request, runtime: AdmissionRuntime = Depends(get_runtime)) -> JSONResponse:
    payload: ValidateReq = await _read_body(request, ValidateReq)

    missing: list[str] = []
    if not payload.uid and not payload.s:
        missing.append("uid")
    if not payload.device_fingerprint:
        missing.append("deviceFingerprint")
    if not payload.validation_code and not payload.s:
        missing.append("validationCode")
    if missing:
        raise InvalidInputError(
            f"missing required field(s): {', '.join(missing)}", fields=missing, code="missing_field"
        )

    credential = credential_from_params({"s": payload.s, "uid": payload.uid, "vc": payload.validation_code})
    controller = runtime.controller
    policy = controller.policy_for(payload.max_devices)
    decision = await run_in_threadpool(
        controller.admit_credential, credential, payload.device_fingerprint, policy=policy
    )
    return JSONResponse(content=decision.as_payload(), status_code=_DECISION_STATUS[decision.reason])


@router.get("/devices", dependencies=[Depends(require_maintenance_token)])
def devices(
    uid: str | None = Query(default=None),
    runtime: AdmissionRuntime = Depends(get_runtime),
) -> dict[str, Any]:
    if not uid:
        raise InvalidInputError("Missing uid parameter", fields=["uid"], code="missing_field")
    return runtime.controller.inspect(uid).as_payload()


@router.post("/cleanup", dependencies=[Depends(require_maintenance_token)])
async def cleanup(request: Request, runtime: AdmissionRuntime = Depends(get_runtime)) -> dict[str, Any]:
    payload: CleanupReq = await _read_body(request, CleanupReq)
    if not payload.uid:
        raise InvalidInputError("Missing uid parameter", fields=["uid"], code="missing_field")
    result = await run_in_threadpool(runtime.sweeper.cleanup, payload.uid, payload.max_age)
    _log.info("api: cleanup finished", extra={"uid": payload.uid, "removed": result.removed_count})
    return result.as_payload()
