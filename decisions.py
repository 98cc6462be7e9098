import logging
import pydantic

from enum import StrEnum
from typing import Callable

from models import (
    AdmissionRequest,
    AdmissionResponse,
    Deployment,
    Patch,
    PatchAction,
    PatchType,
    PolicyConfig,
    Status,
)
from exc import ResourceError

LOG = logging.getLogger(__name__)


class DecisionMode(StrEnum):
    VALIDATE = "validate"
    MUTATE = "mutate"


def json_patch_escape(val):
    return val.replace("~", "~0").replace("/", "~1")


def load_deployment(req: AdmissionRequest) -> Deployment:
    if req.object is None:
        raise ResourceError("admission request does not contain an object")

    try:
        return Deployment.model_validate(req.object)
    except pydantic.ValidationError as err:
        raise ResourceError(f"could not unmarshal raw object: {err}")


def label_patch(deployment: Deployment, policy: PolicyConfig) -> Patch:
    """Build a patch that sets the configured label.

    An "add" below /metadata/labels fails when the labels map does not exist,
    so in that case the whole map is added instead.
    """

    if deployment.metadata.labels is None:
        action = PatchAction(
            op="add",
            path="/metadata/labels",
            value={policy.label_name: policy.label_value},
        )
    else:
        action = PatchAction(
            op="add",
            path=f"/metadata/labels/{json_patch_escape(policy.label_name)}",
            value=policy.label_value,
        )

    return Patch([action])


def validate(req: AdmissionRequest, policy: PolicyConfig) -> AdmissionResponse:
    try:
        deployment = load_deployment(req)
    except ResourceError as err:
        LOG.error("%s", err)
        return AdmissionResponse(status=Status(message=str(err)))

    name = deployment.metadata.name
    LOG.info("name field is set to: %s", name)

    if name != policy.required_name:
        return AdmissionResponse(
            allowed=False,
            status=Status(
                message=f"name must be {policy.required_name!r}, not {name!r}"
            ),
        )

    return AdmissionResponse(allowed=True)


def mutate(req: AdmissionRequest, policy: PolicyConfig) -> AdmissionResponse:
    try:
        deployment = load_deployment(req)
    except ResourceError as err:
        LOG.error("%s", err)
        return AdmissionResponse(status=Status(message=str(err)))

    annotations = deployment.metadata.annotations or {}
    prod = annotations.get(policy.prod_annotation, "")
    LOG.info("annotation %s is set to: %r", policy.prod_annotation, prod)

    if prod.lower() != "true":
        return AdmissionResponse(
            allowed=False,
            status=Status(message=f"annotation {policy.prod_annotation} is not true"),
        )

    return AdmissionResponse(
        allowed=True,
        patchType=PatchType.JSONPatch,
        patch=label_patch(deployment, policy),
        status=Status(
            message=f"label {policy.label_name}={policy.label_value} applied"
        ),
    )


Decision = Callable[[AdmissionRequest, PolicyConfig], AdmissionResponse]

DECISIONS: dict[DecisionMode, Decision] = {
    DecisionMode.VALIDATE: validate,
    DecisionMode.MUTATE: mutate,
}


def decide(
    mode: DecisionMode, req: AdmissionRequest, policy: PolicyConfig
) -> AdmissionResponse:
    return DECISIONS[mode](req, policy)
