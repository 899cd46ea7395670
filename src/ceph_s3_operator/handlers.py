"""kopf handlers wiring the operator components to watch events and webhooks.

The handler bodies are plain functions taking the operator, so they can be
called without a running kopf; ``register_handlers`` only binds them.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import kopf
import pydantic

from ceph_s3_operator.config import OperatorConfig
from ceph_s3_operator.crds import S3CRDs
from ceph_s3_operator.domains.claims import StepResult
from ceph_s3_operator.models.common import S3Bucket, S3UserClaim
from ceph_s3_operator.operator import S3Operator
from ceph_s3_operator.utils.errors import AdmissionDeniedError, FieldViolation
from ceph_s3_operator.utils.labels import S3Labels

logger = logging.getLogger(__name__)

GROUP = S3CRDs.S3_USER_CLAIM.group
VERSION = S3CRDs.S3_USER_CLAIM.version
WEBHOOK_CONFIGURATION = "s3.snappcloud.io"

# kopf does not retry event handlers, bucket events retry in place
BUCKET_ATTEMPTS = 10


def raise_for_result(result: StepResult, target: str, delay: float) -> None:
    """Translate a workflow result into kopf's retry semantics."""
    if result is StepResult.REQUEUE:
        raise kopf.TemporaryError(f"{target} is not converged yet", delay=delay)
    if result is StepResult.HALT:
        raise kopf.PermanentError(f"{target} cannot be reconciled, see the operator log")


def admission_error(error: AdmissionDeniedError) -> kopf.AdmissionError:
    return kopf.AdmissionError(error.message, code=error.code)


def build_webhook_server(config: OperatorConfig, dev: bool = False) -> Any:
    """Create the admission webhook server.

    In dev mode the server is reachable from a local cluster without any
    certificate setup.
    """
    if dev:
        return kopf.WebhookAutoServer(port=config.webhook_port)
    return kopf.WebhookServer(
        host=config.webhook_host,
        port=config.webhook_port,
        certfile=config.webhook_cert_file,
        pkeyfile=config.webhook_key_file,
    )


def handle_claim(operator: S3Operator, namespace: str, name: str, delay: float) -> None:
    """Provision a claim, or clean it up once it is being deleted."""
    result = operator.reconcile_claim(namespace, name)
    raise_for_result(result, f"S3UserClaim {namespace}/{name}", delay)


def handle_s3_user_event(operator: S3Operator, body: dict[str, Any], name: str) -> None:
    """Repair the S3User of a live claim, remove the orphaned ones."""
    result = operator.collect_s3_user(dict(body))
    if result is not StepResult.CONTINUE:
        logger.warning(f"S3User {name} handling ended with {result.value}")


def handle_secret_event(
    operator: S3Operator,
    event: dict[str, Any],
    body: dict[str, Any],
    namespace: str,
) -> None:
    """Recreate a deleted credential secret through its controlling claim."""
    if event.get("type") != "DELETED":
        return
    for ref in body.get("metadata", {}).get("ownerReferences") or []:
        if ref.get("kind") != S3CRDs.S3_USER_CLAIM.kind or not ref.get("controller"):
            continue
        logger.info(f"Secret {namespace}/{body['metadata']['name']} deleted, reconciling its claim")
        result = operator.reconcile_claim(namespace, ref["name"])
        if result is not StepResult.CONTINUE:
            logger.warning(f"S3UserClaim {namespace}/{ref['name']} reconcile ended with {result.value}")


def handle_bucket_event(
    operator: S3Operator,
    event: dict[str, Any],
    namespace: str,
    name: str,
    delay: float,
) -> StepResult:
    """Reconcile an S3Bucket on any change, retrying while it re-queues.

    Buckets carry their own finalizer instead of kopf's, so their deletion
    is seen as a plain event too.
    """
    if event.get("type") == "DELETED":
        return StepResult.CONTINUE
    result = StepResult.CONTINUE
    for attempt in range(BUCKET_ATTEMPTS):
        if attempt:
            time.sleep(delay)
        result = operator.reconcile_bucket(namespace, name)
        if result is not StepResult.REQUEUE:
            break
    if result is not StepResult.CONTINUE:
        logger.warning(f"S3Bucket {namespace}/{name} reconcile ended with {result.value}")
    return result


def validate_claim_request(
    operator: S3Operator,
    body: dict[str, Any],
    old: dict[str, Any] | None,
    operation: str | None,
) -> None:
    """Admission checks for S3UserClaim writes."""
    # DELETE requests carry the object only as oldObject
    source = body if (body.get("metadata") or {}).get("name") else (old or body)
    claim = S3UserClaim.from_k8s(source)
    if not operator.handles_class(claim.spec.s3_user_class):
        return
    admission = operator.claim_admission
    try:
        if operation == "CREATE":
            admission.validate_create(claim)
        elif operation == "UPDATE":
            admission.validate_update(claim, S3UserClaim.from_k8s(old or body))
        elif operation == "DELETE":
            admission.validate_delete(claim)
    except AdmissionDeniedError as e:
        raise admission_error(e) from e


def validate_bucket_request(
    operator: S3Operator,
    body: dict[str, Any],
    old: dict[str, Any] | None,
    operation: str | None,
) -> None:
    """Admission checks for S3Bucket writes."""
    try:
        bucket = S3Bucket.from_k8s(body)
    except pydantic.ValidationError as e:
        violations = [
            FieldViolation(".".join(str(part) for part in error["loc"]), error["msg"])
            for error in e.errors()
        ]
        raise admission_error(AdmissionDeniedError(violations)) from e
    admission = operator.bucket_admission
    try:
        if operation == "CREATE":
            admission.validate_create(bucket)
        elif operation == "UPDATE":
            admission.validate_update(bucket, S3Bucket.from_k8s(old or body))
    except AdmissionDeniedError as e:
        raise admission_error(e) from e


def register_handlers(
    registry: kopf.OperatorRegistry,
    operator: S3Operator,
    dev_webhooks: bool = False,
) -> None:
    """Register all handlers of the operator into the given registry."""
    config = operator.config
    delay = config.requeue_delay_seconds

    def handles_claim(spec: kopf.Spec, **_: Any) -> bool:
        return operator.handles_class(spec.get("s3UserClass"))

    def handles_user(spec: kopf.Spec, **_: Any) -> bool:
        return operator.handles_class(spec.get("s3UserClass"))

    @kopf.on.startup(registry=registry)
    def configure(settings: kopf.OperatorSettings, **_: Any) -> None:
        """Configure kopf for this operator."""
        # kopf guards deletion with the same finalizer the workflows manage
        settings.persistence.finalizer = S3Labels.CLAIM_CLEANUP_FINALIZER
        settings.posting.level = logging.WARNING
        if config.enable_webhooks:
            settings.admission.server = build_webhook_server(config, dev=dev_webhooks)
            settings.admission.managed = WEBHOOK_CONFIGURATION
        logger.info(
            f"S3 operator configured for class {config.s3_user_class} "
            f"on cluster {config.cluster_name}"
        )

    @kopf.on.resume(GROUP, VERSION, "s3userclaims", registry=registry, when=handles_claim)
    @kopf.on.create(GROUP, VERSION, "s3userclaims", registry=registry, when=handles_claim)
    @kopf.on.update(GROUP, VERSION, "s3userclaims", registry=registry, when=handles_claim)
    @kopf.on.delete(GROUP, VERSION, "s3userclaims", registry=registry, when=handles_claim)
    def reconcile_claim(namespace: str, name: str, **_: Any) -> None:
        handle_claim(operator, namespace, name, delay)

    @kopf.on.event(GROUP, VERSION, "s3users", registry=registry, when=handles_user)
    def watch_s3_user(body: kopf.Body, name: str, **_: Any) -> None:
        handle_s3_user_event(operator, dict(body), name)

    @kopf.on.event(
        "v1",
        "secrets",
        registry=registry,
        labels={S3Labels.APP_KUBERNETES_MANAGED_BY: S3Labels.MANAGED_BY_VALUE},
    )
    def watch_secret(event: kopf.RawEvent, body: kopf.Body, namespace: str, **_: Any) -> None:
        handle_secret_event(operator, dict(event), dict(body), namespace)

    @kopf.on.event(GROUP, VERSION, "s3buckets", registry=registry)
    def watch_bucket(event: kopf.RawEvent, namespace: str, name: str, **_: Any) -> None:
        handle_bucket_event(operator, dict(event), namespace, name, delay)

    if not config.enable_webhooks:
        return

    @kopf.on.validate(
        GROUP,
        VERSION,
        "s3userclaims",
        registry=registry,
        id="validate-s3userclaim",
        operations=["CREATE", "UPDATE", "DELETE"],
    )
    def validate_claim(
        body: kopf.Body,
        old: kopf.BodyEssence | None,
        operation: str | None,
        **_: Any,
    ) -> None:
        validate_claim_request(operator, dict(body), dict(old) if old else None, operation)

    @kopf.on.validate(
        GROUP,
        VERSION,
        "s3buckets",
        registry=registry,
        id="validate-s3bucket",
        operations=["CREATE", "UPDATE"],
    )
    def validate_bucket(
        body: kopf.Body,
        old: kopf.BodyEssence | None,
        operation: str | None,
        **_: Any,
    ) -> None:
        validate_bucket_request(operator, dict(body), dict(old) if old else None, operation)
