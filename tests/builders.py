# tests/builders.py
# @ai-rules:
# 1. [Pattern]: Real kubernetes.client models everywhere. Tests never talk to a cluster.
# 2. [Pattern]: FakeCluster serves get-by-name from dicts and raises ApiException(404) for misses, like the API would.
# 3. [Pattern]: StubBackend records every submission in order. Check-in IDs are deterministic (chk-0001, ...).
# 4. [Pattern]: StubBackend(delay=...) yields to the loop before recording, so concurrent handlers interleave.
"""Shared builders and stubs for kubesignal tests."""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Optional

from kubernetes import client
from kubernetes.client.exceptions import ApiException

from kubesignal.models import Alert, CheckIn

NOW = datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc)


def owner_ref(kind: str, name: str, controller: Optional[bool] = True) -> client.V1OwnerReference:
    api_version = "batch/v1" if kind in ("Job", "CronJob") else "apps/v1"
    return client.V1OwnerReference(
        api_version=api_version,
        kind=kind,
        name=name,
        uid=f"uid-{kind.lower()}-{name}",
        controller=controller,
    )


def make_meta(
    name: str,
    namespace: str = "default",
    owners: Optional[list] = None,
    resource_version: str = "1",
    created: Optional[datetime] = None,
) -> client.V1ObjectMeta:
    return client.V1ObjectMeta(
        name=name,
        namespace=namespace,
        uid=f"uid-{name}",
        owner_references=owners,
        resource_version=resource_version,
        creation_timestamp=created,
        managed_fields=[client.V1ManagedFieldsEntry(manager="kubectl", operation="Update")],
    )


def make_pod(
    name: str,
    namespace: str = "default",
    owners: Optional[list] = None,
    node_name: Optional[str] = "node-a",
) -> client.V1Pod:
    return client.V1Pod(
        api_version="v1",
        kind="Pod",
        metadata=make_meta(name, namespace, owners),
        spec=client.V1PodSpec(containers=[client.V1Container(name="main")], node_name=node_name),
    )


def make_job(
    name: str,
    namespace: str = "default",
    cronjob: Optional[str] = None,
    active: Optional[int] = None,
    succeeded: Optional[int] = None,
    failed: Optional[int] = None,
    resource_version: str = "1",
    conditions: Optional[list] = None,
    completion_time: Optional[datetime] = None,
) -> client.V1Job:
    owners = [owner_ref("CronJob", cronjob)] if cronjob else None
    return client.V1Job(
        api_version="batch/v1",
        kind="Job",
        metadata=make_meta(name, namespace, owners, resource_version=resource_version),
        status=client.V1JobStatus(
            active=active,
            succeeded=succeeded,
            failed=failed,
            conditions=conditions,
            completion_time=completion_time,
        ),
    )


def make_cronjob(
    name: str,
    namespace: str = "default",
    schedule: str = "0 2 * * *",
    completions: Optional[int] = None,
    time_zone: Optional[str] = None,
    resource_version: str = "1",
) -> client.V1CronJob:
    return client.V1CronJob(
        api_version="batch/v1",
        kind="CronJob",
        metadata=make_meta(name, namespace, resource_version=resource_version, created=NOW),
        spec=client.V1CronJobSpec(
            schedule=schedule,
            time_zone=time_zone,
            job_template=client.V1JobTemplateSpec(
                spec=client.V1JobSpec(
                    completions=completions,
                    template=client.V1PodTemplateSpec(),
                ),
            ),
        ),
    )


def make_event(
    message: str = "OOMKilled",
    kind: str = "Pod",
    name: str = "web-0",
    namespace: str = "default",
    event_type: str = "Warning",
    reason: str = "BackOff",
    last_timestamp: Optional[datetime] = NOW,
    event_time: Optional[datetime] = None,
    event_name: Optional[str] = None,
) -> client.CoreV1Event:
    return client.CoreV1Event(
        metadata=make_meta(event_name or f"{name}.{reason.lower()}", namespace),
        involved_object=client.V1ObjectReference(
            kind=kind,
            name=name,
            namespace=namespace,
            uid=f"uid-{name}",
        ),
        message=message,
        reason=reason,
        type=event_type,
        last_timestamp=last_timestamp,
        event_time=event_time,
        source=client.V1EventSource(component="kubelet", host="node-a"),
    )


def watch_event(event_type: str, obj, resource_version: Optional[str] = None) -> dict:
    """Notification shaped like kubernetes.watch.Watch.stream() output."""
    rv = resource_version or (obj.metadata.resource_version if obj is not None else None)
    return {
        "type": event_type,
        "object": obj,
        "raw_object": {"metadata": {"resourceVersion": rv}},
    }


class FakeCluster:
    """In-memory stand-in for ClusterClient get-by-name calls."""

    def __init__(self, pods=(), jobs=(), cronjobs=()):
        self.pods = {(p.metadata.namespace, p.metadata.name): p for p in pods}
        self.jobs = {(j.metadata.namespace, j.metadata.name): j for j in jobs}
        self.cronjobs = {(c.metadata.namespace, c.metadata.name): c for c in cronjobs}
        self.calls: list[tuple[str, str, str]] = []

    @staticmethod
    def _lookup(store: dict, namespace: str, name: str):
        try:
            return store[(namespace, name)]
        except KeyError:
            raise ApiException(status=404, reason="Not Found") from None

    async def get_pod(self, namespace: str, name: str):
        self.calls.append(("Pod", namespace, name))
        return self._lookup(self.pods, namespace, name)

    async def get_job(self, namespace: str, name: str):
        self.calls.append(("Job", namespace, name))
        return self._lookup(self.jobs, namespace, name)

    async def get_cronjob(self, namespace: str, name: str):
        self.calls.append(("CronJob", namespace, name))
        return self._lookup(self.cronjobs, namespace, name)


class StubBackend:
    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.alerts: list[Alert] = []
        self.checkins: list[CheckIn] = []
        self._counter = 0
        self.closed = False

    async def submit_alert(self, alert: Alert) -> None:
        self.alerts.append(alert)

    async def submit_checkin(self, checkin: CheckIn) -> str:
        if self.delay:
            await asyncio.sleep(self.delay)
        if not checkin.check_in_id:
            self._counter += 1
            checkin = checkin.model_copy(update={"check_in_id": f"chk-{self._counter:04d}"})
        self.checkins.append(checkin)
        return checkin.check_in_id

    async def close(self) -> None:
        self.closed = True
