"""Composition root of the S3 operator.

All clients are built once here and handed to the components that need
them; no component reaches for a module level client.
"""

from __future__ import annotations

import functools
import logging
import threading
from collections import defaultdict
from typing import Any

from ceph_s3_operator.clients.base import K8sClient
from ceph_s3_operator.clients.rgw import RGWAdminClient, StorageAdmin
from ceph_s3_operator.clients.s3 import BucketAdminFactory, S3BucketClient
from ceph_s3_operator.config import OperatorConfig
from ceph_s3_operator.domains.buckets import (
    BucketAdmission,
    BucketCleaner,
    BucketProvisioner,
    BucketReconciler,
)
from ceph_s3_operator.domains.claims import (
    ClaimAdmission,
    ClaimReconciler,
    Cleaner,
    Provisioner,
    StepResult,
    SubuserReconciler,
)
from ceph_s3_operator.domains.quota import QuotaAggregator, StatusProjector
from ceph_s3_operator.domains.users import S3UserCollector

logger = logging.getLogger(__name__)


class S3Operator:
    """Owns the clients and the components of one operator process.

    Reconciles are serialized per object, whichever watch triggers them.
    """

    def __init__(
        self,
        config: OperatorConfig,
        k8s: K8sClient | None = None,
        storage: StorageAdmin | None = None,
        admission_k8s: K8sClient | None = None,
        bucket_admin_factory: BucketAdminFactory | None = None,
    ):
        self.config = config
        self.k8s = k8s or K8sClient.from_environment()
        self.storage = storage or RGWAdminClient.from_config(config.rgw)
        # Admission runs on the synchronous write path and must fail fast
        self.admission_k8s = admission_k8s or self.k8s.with_timeout(
            config.validation_webhook_timeout_seconds
        )

        self.aggregator = QuotaAggregator(self.k8s)
        self.projector = StatusProjector(self.k8s, self.aggregator)
        self.subusers = SubuserReconciler(self.k8s, self.storage)
        self.provisioner = Provisioner(self.k8s, self.storage, self.subusers, self.projector)
        self.cleaner = Cleaner(self.k8s, self.storage, self.projector)
        self.reconciler = ClaimReconciler(
            self.k8s,
            self.provisioner,
            self.cleaner,
            cluster_name=config.cluster_name,
            user_class=config.s3_user_class,
        )
        self.collector = S3UserCollector(
            self.k8s,
            self.storage,
            self.reconcile_claim,
            cluster_name=config.cluster_name,
        )
        self.claim_admission = ClaimAdmission(
            self.admission_k8s,
            QuotaAggregator(self.admission_k8s),
            default_user_class=config.s3_user_class,
        )
        self.bucket_admin_factory = bucket_admin_factory or functools.partial(
            S3BucketClient.for_credentials, config.rgw
        )
        self.bucket_reconciler = BucketReconciler(
            self.k8s,
            BucketProvisioner(self.k8s, self.bucket_admin_factory),
            BucketCleaner(self.k8s, self.bucket_admin_factory),
            cluster_name=config.cluster_name,
            handles_class=self.handles_class,
        )
        self.bucket_admission = BucketAdmission(self.admission_k8s)

        self._locks: dict[tuple[str, str, str], threading.Lock] = defaultdict(threading.Lock)
        self._locks_guard = threading.Lock()

    def _lock(self, kind: str, namespace: str, name: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks[(kind, namespace, name)]

    def _claim_lock(self, namespace: str, name: str) -> threading.Lock:
        return self._lock("S3UserClaim", namespace, name)

    def handles_class(self, user_class: str | None) -> bool:
        return self.reconciler.handles_class(user_class)

    def reconcile_claim(self, namespace: str, name: str) -> StepResult:
        """Reconcile one claim, never concurrently with itself."""
        with self._claim_lock(namespace, name):
            return self.reconciler.reconcile(namespace, name)

    def reconcile_bucket(self, namespace: str, name: str) -> StepResult:
        with self._lock("S3Bucket", namespace, name):
            return self.bucket_reconciler.reconcile(namespace, name)

    def collect_s3_user(self, body: dict[str, Any]) -> StepResult:
        return self.collector.collect(body)
